from django.db import models, transaction
from django.contrib.auth.models import AbstractUser, UserManager
from django.core.validators import RegexValidator
from django.utils import timezone


class AidUserManager(UserManager):

    def create_superuser(self, username, email=None, password=None, **extra_fields):
        # Superusers sign in through the admin role
        extra_fields.setdefault('user_type', 'admin')
        return super().create_superuser(username, email, password, **extra_fields)


class User(AbstractUser):
    """
    Extended User model for authentication
    """
    USER_TYPES = (
        ('admin', 'Administrator'),
        ('disburser', 'Disburser'),
    )

    user_type = models.CharField(max_length=20, choices=USER_TYPES, default='disburser')

    objects = AidUserManager()

    def __str__(self):
        return f"{self.get_full_name() or self.username} ({self.user_type})"


class LoginAttempt(models.Model):
    """
    Track login attempts for security purposes
    """
    identifier = models.CharField(max_length=150)
    role = models.CharField(max_length=20, choices=User.USER_TYPES)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)
    success = models.BooleanField(default=False)
    user_agent = models.TextField(blank=True, null=True)

    class Meta:
        ordering = ['-timestamp']

    def __str__(self):
        return f"Login attempt for {self.identifier} at {self.timestamp}"


class AccountLock(models.Model):
    """
    Track locked accounts
    """
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='account_lock')
    locked_at = models.DateTimeField(auto_now_add=True)
    failed_attempts = models.PositiveIntegerField(default=0)
    last_attempt_ip = models.GenericIPAddressField(null=True, blank=True)
    unlock_time = models.DateTimeField(null=True, blank=True)
    is_locked = models.BooleanField(default=False)

    def is_account_locked(self):
        if not self.is_locked:
            return False
        if self.unlock_time and timezone.now() > self.unlock_time:
            self.is_locked = False
            self.failed_attempts = 0
            self.save()
            return False
        return True

    def __str__(self):
        return f"Account lock for {self.user.username}"


class Region(models.Model):
    """
    Distribution regions. Beneficiaries, disbursers and stock all belong to one.
    """
    name = models.CharField(max_length=100, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Disburser(models.Model):
    """
    Field operator profile. Signs in with the phone number; the password is
    the linked user's password.
    """
    phone_regex = RegexValidator(
        regex=r'^\+?\d{9,15}$',
        message="Phone number must contain 9 to 15 digits, optionally prefixed with '+'."
    )

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='disburser_profile')
    name = models.CharField(max_length=200)
    phone_number = models.CharField(validators=[phone_regex], max_length=17, unique=True)
    region = models.ForeignKey(Region, on_delete=models.PROTECT, related_name='disbursers')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.phone_number})"


class Beneficiary(models.Model):
    """
    Aid recipient registered in a region by a disburser
    """
    IDENTIFIER_KEYS = ('national_id', 'passport', 'birth_certificate')

    name = models.CharField(max_length=200)
    estimated_age = models.PositiveIntegerField()
    height = models.DecimalField(max_digits=5, decimal_places=1, help_text='Height in centimetres')
    region = models.ForeignKey(Region, on_delete=models.PROTECT, related_name='beneficiaries')
    registered_by = models.ForeignKey(
        Disburser, on_delete=models.SET_NULL, null=True, blank=True, related_name='registered_beneficiaries'
    )
    unique_identifiers = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name_plural = 'beneficiaries'

    def __str__(self):
        return self.name

    @property
    def primary_identifier(self):
        identifiers = self.unique_identifiers or {}
        for key in self.IDENTIFIER_KEYS:
            if identifiers.get(key):
                return identifiers[key]
        return 'No ID'

    def delete_with_history(self):
        """Delete allocations, then fraud alerts, then the beneficiary itself."""
        with transaction.atomic():
            allocation_count, _ = Allocation.objects.filter(beneficiary=self).delete()
            alert_count, _ = FraudAlert.objects.filter(beneficiary=self).delete()
            self.delete()
        return allocation_count, alert_count


class GoodsType(models.Model):
    """
    Catalog of aid items
    """
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class RegionalGoods(models.Model):
    """
    Stock of one goods type held in one region
    """
    goods_type = models.ForeignKey(GoodsType, on_delete=models.CASCADE, related_name='regional_goods')
    region = models.ForeignKey(Region, on_delete=models.CASCADE, related_name='regional_goods')
    quantity = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['region__name', 'goods_type__name']
        verbose_name_plural = 'regional goods'
        constraints = [
            models.UniqueConstraint(fields=['goods_type', 'region'], name='unique_goods_per_region'),
        ]

    def __str__(self):
        return f"{self.goods_type.name} in {self.region.name}: {self.quantity}"


class Allocation(models.Model):
    """
    Goods handed to a beneficiary. Created once by the allocation workflow,
    never updated.
    """
    beneficiary = models.ForeignKey(Beneficiary, on_delete=models.PROTECT, related_name='allocations')
    disburser = models.ForeignKey(Disburser, on_delete=models.SET_NULL, null=True, related_name='allocations')
    goods = models.JSONField(default=list)
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    allocated_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-allocated_at']

    def __str__(self):
        return f"Allocation to {self.beneficiary.name} on {self.allocated_at:%Y-%m-%d}"

    @property
    def goods_entries(self):
        from .allocation import normalize_goods
        return normalize_goods(self.goods)

    @property
    def has_location(self):
        return self.latitude is not None and self.longitude is not None


class FraudAlert(models.Model):
    """
    Blocked duplicate allocation attempt
    """
    beneficiary = models.ForeignKey(Beneficiary, on_delete=models.PROTECT, related_name='fraud_alerts')
    disburser = models.ForeignKey(Disburser, on_delete=models.SET_NULL, null=True, related_name='fraud_alerts')
    goods_ids = models.JSONField(default=list, blank=True)
    details = models.TextField()
    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    attempted_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-attempted_at']

    def __str__(self):
        return f"Fraud alert for {self.beneficiary.name} at {self.attempted_at:%Y-%m-%d %H:%M}"

    @property
    def has_location(self):
        return self.latitude is not None and self.longitude is not None
