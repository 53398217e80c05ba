from django import forms
from django.contrib.auth.password_validation import validate_password

from .models import Beneficiary, Disburser, GoodsType, Region, RegionalGoods, User


class BootstrapModelForm(forms.ModelForm):
    """
    Base form to add Bootstrap 'form-control' class to all fields
    """
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        for field_name, field in self.fields.items():
            if not isinstance(field.widget, forms.CheckboxInput):  # don't override checkboxes
                field.widget.attrs.update({'class': 'form-control'})


class LoginForm(forms.Form):
    ROLE_CHOICES = User.USER_TYPES

    role = forms.ChoiceField(choices=ROLE_CHOICES, initial='disburser')
    identifier = forms.CharField(max_length=150, widget=forms.TextInput(attrs={
        'class': 'form-control',
        'placeholder': 'Username or phone number',
    }))
    password = forms.CharField(widget=forms.PasswordInput(attrs={'class': 'form-control'}))


class BeneficiaryForm(BootstrapModelForm):
    """
    Registration and edit form. The identifier map is edited through three
    optional text fields.
    """
    national_id = forms.CharField(max_length=50, required=False)
    passport = forms.CharField(max_length=50, required=False)
    birth_certificate = forms.CharField(max_length=50, required=False)

    class Meta:
        model = Beneficiary
        fields = ['name', 'estimated_age', 'height']
        widgets = {
            'name': forms.TextInput(attrs={'placeholder': 'Full name'}),
            'estimated_age': forms.NumberInput(attrs={'min': 0, 'max': 130}),
            'height': forms.NumberInput(attrs={'step': '0.1', 'min': 0, 'placeholder': 'cm'}),
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        identifiers = self.instance.unique_identifiers or {}
        for key in Beneficiary.IDENTIFIER_KEYS:
            self.fields[key].widget.attrs.update({'class': 'form-control'})
            if key in identifiers:
                self.fields[key].initial = identifiers[key]

    def clean_height(self):
        height = self.cleaned_data['height']
        if height is not None and height <= 0:
            raise forms.ValidationError('Height must be greater than zero.')
        return height

    def save(self, commit=True):
        beneficiary = super().save(commit=False)
        identifiers = dict(beneficiary.unique_identifiers or {})
        for key in Beneficiary.IDENTIFIER_KEYS:
            value = self.cleaned_data.get(key, '').strip()
            if value:
                identifiers[key] = value
            else:
                identifiers.pop(key, None)
        beneficiary.unique_identifiers = identifiers
        if commit:
            beneficiary.save()
        return beneficiary


class AdminBeneficiaryForm(BeneficiaryForm):

    class Meta(BeneficiaryForm.Meta):
        fields = ['name', 'estimated_age', 'height', 'region']


class DisburserForm(BootstrapModelForm):
    """
    Creates or updates a disburser together with its login user. The password
    is required on create and optional on update.
    """
    password = forms.CharField(required=False, widget=forms.PasswordInput(render_value=False))

    class Meta:
        model = Disburser
        fields = ['name', 'phone_number', 'region', 'is_active']

    def clean_password(self):
        password = self.cleaned_data.get('password', '')
        if not self.instance.pk and not password:
            raise forms.ValidationError('Password is required.')
        if password:
            validate_password(password)
        return password

    def save(self, commit=True):
        disburser = super().save(commit=False)
        password = self.cleaned_data.get('password')

        if disburser.pk:
            user = disburser.user
        else:
            user = User(username=f"disburser-{disburser.phone_number}", user_type='disburser')

        user.username = f"disburser-{disburser.phone_number}"
        user.first_name = disburser.name
        user.is_active = disburser.is_active
        if password:
            user.set_password(password)

        if commit:
            user.save()
            disburser.user = user
            disburser.save()
        return disburser


class RegionForm(BootstrapModelForm):

    class Meta:
        model = Region
        fields = ['name']


class GoodsTypeForm(BootstrapModelForm):

    class Meta:
        model = GoodsType
        fields = ['name', 'description']
        widgets = {
            'description': forms.Textarea(attrs={'rows': 2}),
        }


class RegionalGoodsForm(BootstrapModelForm):

    class Meta:
        model = RegionalGoods
        fields = ['goods_type', 'region', 'quantity']


class AllocationForm(forms.Form):
    """
    Allocation submission for one disburser. Choices are limited to the
    disburser's region.
    """
    beneficiary = forms.ModelChoiceField(queryset=Beneficiary.objects.none(), required=False,
                                         empty_label='Select a beneficiary')
    goods = forms.ModelMultipleChoiceField(queryset=RegionalGoods.objects.none(), required=False,
                                           widget=forms.CheckboxSelectMultiple)
    latitude = forms.FloatField(required=False, widget=forms.HiddenInput)
    longitude = forms.FloatField(required=False, widget=forms.HiddenInput)

    def __init__(self, *args, **kwargs):
        region = kwargs.pop('region')
        super().__init__(*args, **kwargs)
        self.fields['beneficiary'].queryset = Beneficiary.objects.filter(region=region).order_by('name')
        self.fields['beneficiary'].label_from_instance = lambda b: f"{b.name} - {b.primary_identifier}"
        self.fields['beneficiary'].widget.attrs.update({'class': 'form-select'})
        self.fields['goods'].queryset = RegionalGoods.objects.filter(region=region).select_related('goods_type')
        self.fields['goods'].label_from_instance = lambda g: f"{g.goods_type.name} (Available: {g.quantity})"

    @property
    def location(self):
        return {
            'latitude': self.cleaned_data.get('latitude'),
            'longitude': self.cleaned_data.get('longitude'),
        }
