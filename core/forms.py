# core/forms.py
from django import forms
from core.models import Clinic

INPUT_CLASS = 'mt-1 block w-full rounded-md border-gray-300 shadow-sm'


class ClinicForm(forms.ModelForm):
    """Clinic profile shown on invoices and patient emails"""

    class Meta:
        model = Clinic
        fields = ['name', 'phone', 'email', 'address', 'currency']
        widgets = {
            'name': forms.TextInput(attrs={'class': INPUT_CLASS}),
            'phone': forms.TextInput(attrs={'class': INPUT_CLASS}),
            'email': forms.EmailInput(attrs={'class': INPUT_CLASS}),
            'address': forms.Textarea(attrs={'class': INPUT_CLASS, 'rows': 3}),
            'currency': forms.TextInput(attrs={'class': INPUT_CLASS, 'maxlength': 3}),
        }
        help_texts = {
            'name': 'Displayed in the header and on patient emails',
        }

    def clean_name(self):
        name = self.cleaned_data.get('name', '').strip()
        if not name:
            raise forms.ValidationError('Clinic name is required.')
        return name

    def clean_currency(self):
        currency = self.cleaned_data.get('currency', '').strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            raise forms.ValidationError('Use a 3-letter ISO currency code, e.g. INR.')
        return currency
