# users/tests.py
from django.test import TestCase
from django.urls import reverse

from core.models import AuditLog, Clinic
from .forms import StaffForm
from .models import Role, User


class RolePermissionTest(TestCase):
    """Test module permissions of the built-in roles"""

    def setUp(self):
        self.clinic = Clinic.objects.create(name='Smile Dental')

    def make_user(self, username, role_name):
        return User.objects.create_user(
            username=username, password='s3cret-pass', clinic=self.clinic, role=Role.get_role(role_name)
        )

    def test_get_role_fills_defaults(self):
        role = Role.get_role(Role.DOCTOR)
        self.assertEqual(role.display_name, 'Doctor')
        self.assertEqual(role.permissions, Role.DEFAULT_PERMISSIONS[Role.DOCTOR])
        self.assertEqual(Role.get_role(Role.DOCTOR).pk, role.pk)

    def test_admin_has_every_module(self):
        admin = self.make_user('admin', Role.ADMIN)
        for module in Role.MODULES:
            self.assertTrue(admin.has_permission(module), module)

    def test_doctor_permissions(self):
        doctor = self.make_user('drrao', Role.DOCTOR)
        self.assertTrue(doctor.has_permission('clinical_records'))
        self.assertTrue(doctor.has_permission('appointments'))
        self.assertFalse(doctor.has_permission('billing'))
        self.assertFalse(doctor.has_permission('analytics'))
        self.assertTrue(doctor.is_doctor)

    def test_staff_permissions(self):
        staff = self.make_user('frontdesk', Role.STAFF)
        self.assertTrue(staff.has_permission('billing'))
        self.assertFalse(staff.has_permission('clinical_records'))
        self.assertFalse(staff.has_permission('treatments'))
        self.assertFalse(staff.is_doctor)

    def test_user_without_role_has_no_permissions(self):
        user = User.objects.create_user(username='norole', password='s3cret-pass', clinic=self.clinic)
        self.assertFalse(user.has_permission('dashboard'))
        self.assertFalse(user.has_role(Role.ADMIN))

    def test_superuser_has_every_permission(self):
        root = User.objects.create_superuser(username='root', password='s3cret-pass', email='root@example.com')
        self.assertTrue(root.has_permission('analytics'))

    def test_unknown_module_denied(self):
        admin = self.make_user('admin', Role.ADMIN)
        self.assertFalse(admin.has_permission('payroll'))

    def test_full_name_falls_back_to_username(self):
        user = self.make_user('frontdesk', Role.STAFF)
        self.assertEqual(user.full_name, 'frontdesk')
        user.first_name, user.last_name = 'Meera', 'Iyer'
        self.assertEqual(user.full_name, 'Meera Iyer')


class StaffManagementTest(TestCase):
    """Test staff account views"""

    def setUp(self):
        self.clinic = Clinic.objects.create(name='Smile Dental')
        self.admin_role = Role.get_role(Role.ADMIN)
        self.staff_role = Role.get_role(Role.STAFF)
        Role.get_role(Role.SUPERADMIN)
        self.admin = User.objects.create_user(
            username='admin', password='s3cret-pass', clinic=self.clinic, role=self.admin_role
        )
        self.client.force_login(self.admin)

    def test_superadmin_role_hidden_from_clinic_admins(self):
        form = StaffForm(request_user=self.admin)
        names = set(form.fields['role'].queryset.values_list('name', flat=True))
        self.assertNotIn(Role.SUPERADMIN, names)
        self.assertIn(Role.STAFF, names)

    def test_create_staff_in_own_clinic(self):
        response = self.client.post(reverse('users:staff_create'), {
            'username': 'frontdesk',
            'first_name': 'Meera',
            'last_name': 'Iyer',
            'email': 'meera@example.com',
            'phone': '9876500000',
            'role': self.staff_role.pk,
            'is_active': 'on',
            'password1': 'Molar-Crown-2026!',
            'password2': 'Molar-Crown-2026!',
        })
        self.assertRedirects(response, reverse('users:staff_list'))

        staff = User.objects.get(username='frontdesk')
        self.assertEqual(staff.clinic, self.clinic)
        self.assertTrue(staff.check_password('Molar-Crown-2026!'))

    def test_password_mismatch(self):
        form = StaffForm(data={
            'username': 'frontdesk',
            'role': self.staff_role.pk,
            'is_active': 'on',
            'password1': 'Molar-Crown-2026!',
            'password2': 'Molar-Crown-2027!',
        }, request_user=self.admin)
        self.assertFalse(form.is_valid())
        self.assertIn("Passwords don't match.", form.non_field_errors())

    def test_cannot_deactivate_own_account(self):
        response = self.client.post(reverse('users:staff_update', args=[self.admin.pk]), {
            'username': 'admin',
            'first_name': '',
            'last_name': '',
            'email': '',
            'phone': '',
            'role': self.admin_role.pk,
        })
        self.assertEqual(response.status_code, 200)
        self.admin.refresh_from_db()
        self.assertTrue(self.admin.is_active)

    def test_last_admin_cannot_be_demoted(self):
        form = StaffForm(data={
            'username': 'admin',
            'role': self.staff_role.pk,
            'is_active': 'on',
        }, instance=self.admin, request_user=self.admin)
        self.assertFalse(form.is_valid())
        self.assertIn('A clinic needs at least one active admin account.', form.non_field_errors())

    def test_admin_can_be_demoted_when_another_remains(self):
        User.objects.create_user(
            username='admin2', password='s3cret-pass', clinic=self.clinic, role=self.admin_role
        )
        form = StaffForm(data={
            'username': 'admin',
            'role': self.staff_role.pk,
            'is_active': 'on',
        }, instance=self.admin, request_user=self.admin)
        self.assertTrue(form.is_valid(), form.errors)

    def test_staff_of_other_clinic_is_404(self):
        other_clinic = Clinic.objects.create(name='Other Dental')
        outsider = User.objects.create_user(
            username='outsider', password='s3cret-pass', clinic=other_clinic, role=self.staff_role
        )
        response = self.client.get(reverse('users:staff_update', args=[outsider.pk]))
        self.assertEqual(response.status_code, 404)

    def test_staff_list_is_scoped(self):
        other_clinic = Clinic.objects.create(name='Other Dental')
        User.objects.create_user(username='outsider', password='s3cret-pass', clinic=other_clinic, role=self.staff_role)
        response = self.client.get(reverse('users:staff_list'))
        self.assertEqual([u.username for u in response.context['staff_members']], ['admin'])

    def test_doctor_cannot_manage_staff(self):
        doctor = User.objects.create_user(
            username='drrao', password='s3cret-pass', clinic=self.clinic, role=Role.get_role(Role.DOCTOR)
        )
        self.client.force_login(doctor)
        response = self.client.get(reverse('users:staff_list'))
        self.assertRedirects(response, reverse('core:dashboard'), fetch_redirect_response=False)


class AuthenticationAuditTest(TestCase):
    """Test that sign-in activity reaches the audit trail"""

    def setUp(self):
        self.clinic = Clinic.objects.create(name='Smile Dental')
        self.user = User.objects.create_user(
            username='admin', password='s3cret-pass', clinic=self.clinic, role=Role.get_role(Role.ADMIN)
        )

    def test_login_is_logged(self):
        response = self.client.post(reverse('users:login'), {'username': 'admin', 'password': 's3cret-pass'})
        self.assertRedirects(response, reverse('core:dashboard'), fetch_redirect_response=False)

        log = AuditLog.objects.get(action='login')
        self.assertEqual(log.user, self.user)
        self.assertEqual(log.clinic, self.clinic)

    def test_failed_login_is_logged(self):
        self.client.post(reverse('users:login'), {'username': 'admin', 'password': 'wrong'})
        log = AuditLog.objects.get(action='login_failed')
        self.assertEqual(log.object_repr, 'admin')
        self.assertIsNone(log.user)

    def test_logout_is_logged(self):
        self.client.force_login(self.user)
        response = self.client.post(reverse('users:logout'))
        self.assertRedirects(response, reverse('users:login'))
        self.assertTrue(AuditLog.objects.filter(action='logout', user=self.user).exists())
