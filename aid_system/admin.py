from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .allocation import GoodsNameCache
from .models import (
    AccountLock, Allocation, Beneficiary, Disburser, FraudAlert, GoodsType,
    LoginAttempt, Region, RegionalGoods, User,
)


@admin.register(User)
class CustomUserAdmin(BaseUserAdmin):
    """Custom user admin to handle the extended User model"""
    list_display = ('username', 'email', 'first_name', 'last_name', 'user_type', 'is_staff', 'is_active')
    list_filter = ('user_type', 'is_staff', 'is_superuser', 'is_active', 'date_joined')
    search_fields = ('username', 'email', 'first_name', 'last_name')
    ordering = ('username',)

    fieldsets = BaseUserAdmin.fieldsets + (
        ('Additional Info', {
            'fields': ('user_type',)
        }),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Additional Info', {
            'fields': ('user_type',)
        }),
    )


class RegionalGoodsInline(admin.TabularInline):
    model = RegionalGoods
    extra = 0


@admin.register(Region)
class RegionAdmin(admin.ModelAdmin):
    list_display = ('name', 'beneficiary_count', 'disburser_count', 'created_at')
    search_fields = ('name',)
    inlines = [RegionalGoodsInline]

    def beneficiary_count(self, obj):
        return obj.beneficiaries.count()
    beneficiary_count.short_description = 'Beneficiaries'

    def disburser_count(self, obj):
        return obj.disbursers.count()
    disburser_count.short_description = 'Disbursers'


@admin.register(Disburser)
class DisburserAdmin(admin.ModelAdmin):
    list_display = ('name', 'phone_number', 'region', 'is_active', 'created_at')
    list_filter = ('is_active', 'region')
    search_fields = ('name', 'phone_number', 'region__name')
    raw_id_fields = ('user',)


@admin.register(Beneficiary)
class BeneficiaryAdmin(admin.ModelAdmin):
    list_display = ('name', 'estimated_age', 'height', 'region', 'registered_by', 'created_at')
    list_filter = ('region',)
    search_fields = ('name', 'region__name')
    readonly_fields = ('created_at', 'updated_at')

    def delete_model(self, request, obj):
        obj.delete_with_history()

    def delete_queryset(self, request, queryset):
        for obj in queryset:
            obj.delete_with_history()


@admin.register(GoodsType)
class GoodsTypeAdmin(admin.ModelAdmin):
    list_display = ('name', 'description', 'created_at')
    search_fields = ('name',)
    inlines = [RegionalGoodsInline]


@admin.register(RegionalGoods)
class RegionalGoodsAdmin(admin.ModelAdmin):
    list_display = ('goods_type', 'region', 'quantity', 'updated_at')
    list_filter = ('region', 'goods_type')
    search_fields = ('goods_type__name', 'region__name')


@admin.register(Allocation)
class AllocationAdmin(admin.ModelAdmin):
    list_display = ('beneficiary', 'disburser', 'goods_display', 'allocated_at', 'latitude', 'longitude')
    list_filter = ('allocated_at', 'disburser__region')
    search_fields = ('beneficiary__name', 'disburser__name')
    date_hierarchy = 'allocated_at'
    readonly_fields = ('beneficiary', 'disburser', 'goods', 'latitude', 'longitude', 'allocated_at')

    def get_queryset(self, request):
        self.name_cache = GoodsNameCache()
        return super().get_queryset(request).select_related('beneficiary', 'disburser')

    def goods_display(self, obj):
        return ', '.join(self.name_cache.names_for(obj.goods_entries))
    goods_display.short_description = 'Goods'

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(FraudAlert)
class FraudAlertAdmin(admin.ModelAdmin):
    list_display = ('beneficiary', 'disburser', 'details', 'attempted_at')
    list_filter = ('attempted_at',)
    search_fields = ('beneficiary__name', 'disburser__name', 'details')
    date_hierarchy = 'attempted_at'
    readonly_fields = ('beneficiary', 'disburser', 'goods_ids', 'details', 'latitude', 'longitude', 'attempted_at')

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(LoginAttempt)
class LoginAttemptAdmin(admin.ModelAdmin):
    list_display = ('identifier', 'role', 'ip_address', 'success', 'timestamp')
    list_filter = ('success', 'role', 'timestamp')
    search_fields = ('identifier', 'ip_address')
    readonly_fields = ('identifier', 'role', 'ip_address', 'success', 'user_agent', 'timestamp')


@admin.register(AccountLock)
class AccountLockAdmin(admin.ModelAdmin):
    list_display = ('user', 'is_locked', 'failed_attempts', 'last_attempt_ip', 'unlock_time')
    list_filter = ('is_locked',)
    search_fields = ('user__username',)
    actions = ['unlock_accounts']

    def unlock_accounts(self, request, queryset):
        updated = queryset.update(is_locked=False, failed_attempts=0, unlock_time=None)
        self.message_user(request, f'{updated} account(s) unlocked.')
    unlock_accounts.short_description = 'Unlock selected accounts'
