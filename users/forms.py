# users/forms.py
from django import forms
from django.contrib.auth.forms import AuthenticationForm
from django.contrib.auth.password_validation import validate_password
from .models import User, Role

INPUT_CLASS = 'mt-1 block w-full px-3 py-2 border border-gray-300 rounded-md shadow-sm'


class CustomLoginForm(AuthenticationForm):
    username = forms.CharField(
        widget=forms.TextInput(attrs={'class': INPUT_CLASS, 'placeholder': 'Username'})
    )
    password = forms.CharField(
        widget=forms.PasswordInput(attrs={'class': INPUT_CLASS, 'placeholder': 'Password'})
    )


class StaffForm(forms.ModelForm):
    """Form for creating and updating clinic staff accounts"""
    password1 = forms.CharField(
        label='Password',
        widget=forms.PasswordInput(attrs={'class': INPUT_CLASS}),
        required=False,
        help_text="Leave blank to keep current password (for updates)"
    )
    password2 = forms.CharField(
        label='Confirm Password',
        widget=forms.PasswordInput(attrs={'class': INPUT_CLASS}),
        required=False
    )

    class Meta:
        model = User
        fields = ['username', 'first_name', 'last_name', 'email', 'phone', 'role', 'is_active']
        widgets = {
            'username': forms.TextInput(attrs={'class': INPUT_CLASS}),
            'first_name': forms.TextInput(attrs={'class': INPUT_CLASS}),
            'last_name': forms.TextInput(attrs={'class': INPUT_CLASS}),
            'email': forms.EmailInput(attrs={'class': INPUT_CLASS}),
            'phone': forms.TextInput(attrs={'class': INPUT_CLASS}),
            'role': forms.Select(attrs={'class': INPUT_CLASS}),
        }
        labels = {
            'is_active': 'Account is active',
        }

    def __init__(self, *args, **kwargs):
        self.request_user = kwargs.pop('request_user', None)
        super().__init__(*args, **kwargs)

        is_update = bool(self.instance and self.instance.pk)
        if not is_update:
            self.fields['password1'].required = True
            self.fields['password2'].required = True

        # Only superusers may hand out the SUPERADMIN role
        roles = Role.objects.all()
        if not (self.request_user and self.request_user.is_superuser):
            roles = roles.exclude(name=Role.SUPERADMIN)
        self.fields['role'].queryset = roles.order_by('display_name')
        self.fields['role'].required = True

    def clean(self):
        cleaned_data = super().clean()
        password1 = cleaned_data.get('password1')
        password2 = cleaned_data.get('password2')

        if password1 or password2:
            if password1 != password2:
                raise forms.ValidationError("Passwords don't match.")
            validate_password(password1, self.instance)

        if self._removes_last_admin(cleaned_data):
            raise forms.ValidationError('A clinic needs at least one active admin account.')

        return cleaned_data

    def _removes_last_admin(self, cleaned_data):
        instance = self.instance
        if not instance.pk or not instance.clinic_id:
            return False
        current = User.objects.select_related('role').get(pk=instance.pk)
        if not (current.is_active and current.has_role(Role.ADMIN)):
            return False

        new_role = cleaned_data.get('role')
        stays_admin = cleaned_data.get('is_active') and new_role is not None and new_role.name == Role.ADMIN
        if stays_admin:
            return False
        return not User.objects.filter(
            clinic_id=instance.clinic_id, is_active=True, role__name=Role.ADMIN
        ).exclude(pk=instance.pk).exists()

    def save(self, commit=True):
        user = super().save(commit=False)
        password = self.cleaned_data.get('password1')
        if password:
            user.set_password(password)
        if commit:
            user.save()
        return user
