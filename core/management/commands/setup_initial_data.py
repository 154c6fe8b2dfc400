from decimal import Decimal

from django.core.management.base import BaseCommand
from django.contrib.auth import get_user_model
from django.db import transaction

from core.models import Clinic
from treatments.models import Treatment
from users.models import Role

User = get_user_model()

DEFAULT_TREATMENTS = [
    # (code, name, category, standard_cost, duration_minutes)
    ('D0150', 'Comprehensive Oral Evaluation', 'Diagnostic', Decimal('500.00'), 30),
    ('D0210', 'Full Mouth X-Ray', 'Diagnostic', Decimal('800.00'), 20),
    ('D1110', 'Scaling and Polishing', 'Preventive', Decimal('1200.00'), 45),
    ('D1206', 'Fluoride Varnish', 'Preventive', Decimal('600.00'), 15),
    ('D2391', 'Composite Filling', 'Restorative', Decimal('1500.00'), 45),
    ('D3310', 'Root Canal Treatment (Anterior)', 'Endodontic', Decimal('6000.00'), 90),
    ('D3330', 'Root Canal Treatment (Molar)', 'Endodontic', Decimal('9000.00'), 120),
    ('D4341', 'Deep Scaling (per quadrant)', 'Periodontic', Decimal('2500.00'), 60),
    ('D2740', 'Ceramic Crown', 'Prosthodontic', Decimal('12000.00'), 60),
    ('D8080', 'Orthodontic Consultation', 'Orthodontic', Decimal('700.00'), 30),
    ('D7140', 'Simple Extraction', 'Oral Surgery', Decimal('1500.00'), 30),
    ('D9972', 'Teeth Whitening', 'Cosmetic', Decimal('8000.00'), 60),
    ('D9110', 'Emergency Pain Relief', 'Emergency', Decimal('1000.00'), 30),
]


class Command(BaseCommand):
    help = 'Set up initial data: roles, a clinic, an admin user and a starter treatment catalog'

    def add_arguments(self, parser):
        parser.add_argument('--clinic-name', default='Dental Practice', help='Name of the clinic to create')
        parser.add_argument('--admin-username', default='admin')
        parser.add_argument('--admin-password', default='admin123')
        parser.add_argument('--admin-email', default='admin@dentalpractice.local')

    def handle(self, *args, **options):
        self.stdout.write(self.style.SUCCESS('Setting up initial data...'))

        with transaction.atomic():
            self.create_default_roles()
            clinic = self.create_clinic(options['clinic_name'])
            self.create_admin_user(clinic, options)
            self.create_default_treatments(clinic)

        self.stdout.write(self.style.SUCCESS('Initial data setup completed!'))

    def create_default_roles(self):
        self.stdout.write('Creating default roles...')

        for name, display_name in Role.ROLE_CHOICES:
            role, created = Role.objects.get_or_create(
                name=name,
                defaults={
                    'display_name': display_name,
                    'permissions': dict(Role.DEFAULT_PERMISSIONS[name]),
                }
            )
            if created:
                self.stdout.write(f'  ✓ Created role: {role.display_name}')
            else:
                self.stdout.write(f'  - Role already exists: {role.display_name}')

    def create_clinic(self, name):
        self.stdout.write('Creating clinic...')

        clinic = Clinic.objects.filter(name=name).first()
        if clinic:
            self.stdout.write(f'  - Clinic already exists: {clinic.name} ({clinic.slug})')
            return clinic

        clinic = Clinic.objects.create(name=name)
        self.stdout.write(f'  ✓ Created clinic: {clinic.name} ({clinic.slug})')
        return clinic

    def create_admin_user(self, clinic, options):
        self.stdout.write('Creating admin user...')

        username = options['admin_username']
        if User.objects.filter(username=username).exists():
            self.stdout.write('  - Admin user already exists')
            return

        admin_user = User.objects.create_superuser(
            username=username,
            email=options['admin_email'],
            password=options['admin_password'],
            first_name='System',
            last_name='Administrator',
            clinic=clinic,
            role=Role.get_role(Role.ADMIN),
        )
        self.stdout.write(f'  ✓ Created admin user: {admin_user.username}')
        self.stdout.write('    Please change this password after first login!')

    def create_default_treatments(self, clinic):
        self.stdout.write('Creating starter treatment catalog...')

        for code, name, category, cost, duration in DEFAULT_TREATMENTS:
            treatment, created = Treatment.objects.get_or_create(
                clinic=clinic,
                code=code,
                defaults={
                    'name': name,
                    'category': category,
                    'standard_cost': cost,
                    'duration_minutes': duration,
                }
            )
            if created:
                self.stdout.write(f'  ✓ Created treatment: {treatment.name}')
            else:
                self.stdout.write(f'  - Treatment already exists: {treatment.name}')
