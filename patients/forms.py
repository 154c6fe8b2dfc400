# patients/forms.py
from django import forms
from django.core.exceptions import ValidationError

from core.utils import get_local_today, calculate_age
from .models import Patient

INPUT_CLASS = 'mt-1 block w-full rounded-md border-gray-300 shadow-sm'


def clean_name(name, field_name="name"):
    """
    Utility function to clean and validate names.

    Args:
        name: The name string to clean
        field_name: Name of the field for error messages

    Returns:
        Cleaned name string with inner whitespace collapsed

    Raises:
        ValidationError: If the name is empty or too long
    """
    name = ' '.join((name or '').split())

    if not name:
        raise ValidationError(f'Please enter a {field_name}.')

    if len(name) > 50:
        raise ValidationError(f'{field_name.capitalize()} must not exceed 50 characters.')

    return name


def clean_phone_number(phone, field_name="phone number"):
    """
    Utility function to normalise a phone number.

    Spaces, dashes, dots and brackets are removed; a leading ``+`` is kept.
    The result must hold 10-15 characters, digits only after the optional ``+``.
    """
    phone = (phone or '').strip()
    for ch in ' -().':
        phone = phone.replace(ch, '')

    if not phone:
        raise ValidationError(f'Please enter a {field_name}.')

    digits = phone[1:] if phone.startswith('+') else phone
    if not digits.isdigit():
        raise ValidationError(f'Please enter a valid {field_name}.')

    if not 10 <= len(phone) <= 15:
        raise ValidationError(f'{field_name.capitalize()} must be 10 to 15 characters long.')

    return phone


def parse_allergies(value):
    """Comma or newline separated text -> list of allergy names"""
    if isinstance(value, (list, tuple)):
        items = value
    else:
        items = (value or '').replace('\n', ',').split(',')
    return [item.strip() for item in items if item and item.strip()]


class PatientForm(forms.ModelForm):
    """Form for creating and updating patient information"""

    allergies = forms.CharField(
        required=False,
        widget=forms.Textarea(attrs={
            'class': INPUT_CLASS,
            'rows': 2,
            'placeholder': 'Penicillin, Latex'
        }),
        help_text='Separate allergies with commas'
    )

    class Meta:
        model = Patient
        fields = [
            'first_name', 'last_name', 'email', 'phone', 'date_of_birth',
            'gender', 'address', 'allergies', 'notes', 'is_active'
        ]
        widgets = {
            'first_name': forms.TextInput(attrs={'class': INPUT_CLASS, 'placeholder': 'Enter first name'}),
            'last_name': forms.TextInput(attrs={'class': INPUT_CLASS, 'placeholder': 'Enter last name'}),
            'email': forms.EmailInput(attrs={'class': INPUT_CLASS, 'placeholder': 'patient@example.com'}),
            'phone': forms.TextInput(attrs={'class': INPUT_CLASS, 'placeholder': '+919876543210'}),
            'date_of_birth': forms.DateInput(attrs={'class': INPUT_CLASS, 'type': 'date'}),
            'gender': forms.Select(attrs={'class': INPUT_CLASS}),
            'address': forms.TextInput(attrs={'class': INPUT_CLASS}),
            'notes': forms.Textarea(attrs={'class': INPUT_CLASS, 'rows': 3}),
        }
        labels = {
            'email': 'Email Address',
            'phone': 'Phone Number',
            'is_active': 'Active patient',
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if self.instance and self.instance.pk and not self.is_bound:
            self.initial['allergies'] = ', '.join(self.instance.allergies or [])

    def clean_first_name(self):
        return clean_name(self.cleaned_data.get('first_name'), "first name")

    def clean_last_name(self):
        return clean_name(self.cleaned_data.get('last_name'), "last name")

    def clean_email(self):
        email = self.cleaned_data.get('email')
        return email.strip().lower() if email else None

    def clean_phone(self):
        return clean_phone_number(self.cleaned_data.get('phone'))

    def clean_allergies(self):
        return parse_allergies(self.cleaned_data.get('allergies'))

    def clean_date_of_birth(self):
        dob = self.cleaned_data.get('date_of_birth')
        if dob:
            if dob > get_local_today():
                raise ValidationError('Date of birth cannot be in the future.')
            if calculate_age(dob) >= 150:
                raise ValidationError('Please enter a valid date of birth.')
        return dob


class PatientSearchForm(forms.Form):
    query = forms.CharField(
        max_length=100,
        required=False,
        widget=forms.TextInput(attrs={
            'class': INPUT_CLASS,
            'placeholder': 'Search by name or phone...'
        }),
        label='Search'
    )
