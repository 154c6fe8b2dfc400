# treatments/forms.py
from django import forms
from .models import Treatment

INPUT_CLASS = 'mt-1 block w-full rounded-md border-gray-300 shadow-sm'


class TreatmentForm(forms.ModelForm):
    """Form for creating and updating catalog treatments"""

    class Meta:
        model = Treatment
        fields = ['code', 'name', 'category', 'standard_cost', 'duration_minutes', 'description', 'is_active']
        widgets = {
            'code': forms.TextInput(attrs={'class': INPUT_CLASS, 'placeholder': 'D1110'}),
            'name': forms.TextInput(attrs={'class': INPUT_CLASS}),
            'category': forms.Select(attrs={'class': INPUT_CLASS}),
            'standard_cost': forms.NumberInput(attrs={'class': INPUT_CLASS, 'step': '0.01', 'min': '0'}),
            'duration_minutes': forms.NumberInput(attrs={'class': INPUT_CLASS, 'step': '5', 'min': '5', 'max': '480'}),
            'description': forms.Textarea(attrs={'class': INPUT_CLASS, 'rows': 3}),
        }
        help_texts = {
            'duration_minutes': 'Between 5 and 480 minutes',
        }

    def __init__(self, *args, **kwargs):
        self.clinic = kwargs.pop('clinic', None)
        super().__init__(*args, **kwargs)

    def clean_name(self):
        name = ' '.join((self.cleaned_data.get('name') or '').split())
        if not name:
            raise forms.ValidationError('Treatment name is required.')
        return name

    def clean_code(self):
        code = (self.cleaned_data.get('code') or '').strip().upper()
        if code and self.clinic is not None:
            duplicates = Treatment.objects.filter(clinic=self.clinic, code=code)
            if self.instance.pk:
                duplicates = duplicates.exclude(pk=self.instance.pk)
            if duplicates.exists():
                raise forms.ValidationError(f'A treatment with code {code} already exists.')
        return code
