from datetime import datetime, timedelta
import json
import logging

from django.conf import settings
from django.contrib import messages
from django.contrib.auth import authenticate, login, logout
from django.contrib.auth.decorators import login_required, user_passes_test
from django.core.paginator import Paginator
from django.db import transaction
from django.db.models import Count, ProtectedError, Q, Sum
from django.http import HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.template.loader import render_to_string
from django.utils import timezone
from django.views.decorators.http import require_POST

from .allocation import FAILED, FRAUD_BLOCKED, GoodsNameCache, submit_allocation
from .analytics import TIME_RANGES, get_dashboard_statistics, render_allocation_chart
from .forms import (
    AdminBeneficiaryForm, AllocationForm, BeneficiaryForm, DisburserForm,
    GoodsTypeForm, LoginForm, RegionForm, RegionalGoodsForm,
)
from .models import (
    AccountLock, Allocation, Beneficiary, Disburser, FraudAlert, GoodsType,
    LoginAttempt, Region, RegionalGoods, User,
)

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Get client IP address"""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0]
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip


def parse_json_body(request):
    """Decode a JSON request body into a dict; raises ValueError on bad input"""
    data = json.loads(request.body or b'{}')
    if not isinstance(data, dict):
        raise ValueError('Expected a JSON object')
    return data


def form_errors(form):
    """Field name to list of error messages, for JSON responses"""
    return {
        field: [error['message'] for error in errors]
        for field, errors in form.errors.get_json_data().items()
    }


# Helper functions to check user type
def is_admin(user):
    return user.user_type == 'admin'


def is_disburser(user):
    return user.user_type == 'disburser' and hasattr(user, 'disburser_profile')


# Authentication Views

def check_account_lock(user, ip_address=None):
    """Return (is_locked, account_lock) for a user"""
    account_lock, created = AccountLock.objects.get_or_create(
        user=user,
        defaults={'failed_attempts': 0, 'is_locked': False, 'last_attempt_ip': ip_address}
    )
    return account_lock.is_account_locked(), account_lock


def handle_failed_login(user, ip_address):
    """Count a failed attempt against a known user; returns True when the account got locked"""
    account_lock, created = AccountLock.objects.get_or_create(
        user=user,
        defaults={'failed_attempts': 0, 'is_locked': False, 'last_attempt_ip': ip_address}
    )
    account_lock.failed_attempts += 1
    account_lock.last_attempt_ip = ip_address

    if account_lock.failed_attempts >= settings.AID_LOGIN_MAX_FAILED_ATTEMPTS:
        account_lock.is_locked = True
        account_lock.unlock_time = timezone.now() + timedelta(minutes=settings.AID_LOGIN_LOCK_MINUTES)
        account_lock.save()
        logger.warning(f"Account {user.username} locked after {account_lock.failed_attempts} failed attempts from {ip_address}")
        return True

    account_lock.save()
    return False


def is_deactivated(user):
    if not user.is_active:
        return True
    profile = getattr(user, 'disburser_profile', None)
    return profile is not None and not profile.is_active


def find_login_user(role, identifier):
    """Admins sign in with their username, disbursers with their phone number"""
    if role == 'admin':
        return User.objects.filter(username__iexact=identifier, user_type='admin').first()
    disburser = Disburser.objects.select_related('user').filter(phone_number=identifier).first()
    return disburser.user if disburser else None


def login_view(request):
    if request.user.is_authenticated:
        return redirect('admin_dashboard' if is_admin(request.user) else 'disburser_dashboard')

    form = LoginForm(request.POST or None)
    if request.method == 'POST' and form.is_valid():
        role = form.cleaned_data['role']
        identifier = form.cleaned_data['identifier'].strip()
        password = form.cleaned_data['password']

        ip_address = get_client_ip(request)
        user_agent = request.META.get('HTTP_USER_AGENT', '')
        user_obj = find_login_user(role, identifier)

        if user_obj is not None:
            is_locked, account_lock = check_account_lock(user_obj, ip_address)
            if is_locked:
                messages.error(request, 'Account is temporarily locked due to multiple failed attempts. Please try again later.')
                return render(request, 'auth/login.html', {'form': form})

        user = None
        if user_obj is not None:
            user = authenticate(request, username=user_obj.username, password=password)
        if user is not None and is_deactivated(user):
            user = None

        LoginAttempt.objects.create(
            identifier=identifier,
            role=role,
            ip_address=ip_address,
            success=user is not None,
            user_agent=user_agent
        )

        if user is not None:
            if hasattr(user, 'account_lock'):
                account_lock = user.account_lock
                account_lock.failed_attempts = 0
                account_lock.is_locked = False
                account_lock.unlock_time = None
                account_lock.save()

            login(request, user)
            logger.info(f"{role} {user.username} signed in from {ip_address}")
            messages.success(request, f"Welcome, {user.get_full_name() or user.username}")
            if role == 'admin':
                return redirect('admin_dashboard')
            return redirect('disburser_dashboard')

        if user_obj is not None and is_deactivated(user_obj):
            messages.error(request, 'This account has been deactivated. Contact an administrator.')
        elif user_obj is not None and handle_failed_login(user_obj, ip_address):
            messages.error(request, 'Account locked due to multiple failed attempts.')
        elif role == 'admin':
            messages.error(request, 'Invalid username or password')
        else:
            messages.error(request, 'Invalid phone number or password')

    return render(request, 'auth/login.html', {'form': form})


def logout_view(request):
    """Logout user and clear session"""
    logout(request)
    messages.success(request, 'You have been logged out successfully.')
    return redirect('login_view')


# Admin Dashboard

@login_required
@user_passes_test(is_admin)
def admin_dashboard(request):
    time_range = request.GET.get('range', 'week')
    if time_range not in TIME_RANGES:
        time_range = 'week'

    name_cache = GoodsNameCache()
    stats = get_dashboard_statistics(time_range=time_range, name_cache=name_cache)

    context = {
        'stats': stats,
        'time_range': time_range,
        'time_ranges': list(TIME_RANGES.keys()),
        'allocation_chart': render_allocation_chart(stats['allocations']['by_time']),
        'recent_alerts': FraudAlert.objects.select_related('beneficiary', 'disburser')[:5],
    }
    return render(request, 'admin/dashboard.html', context)


# Beneficiary management

@login_required
@user_passes_test(is_admin)
def beneficiary_list(request):
    search = request.GET.get('search', '').strip()
    beneficiaries = Beneficiary.objects.select_related('region', 'registered_by').annotate(
        allocation_count=Count('allocations')
    )

    if search:
        query = Q(name__icontains=search) | Q(region__name__icontains=search)
        for key in Beneficiary.IDENTIFIER_KEYS:
            query |= Q(**{f'unique_identifiers__{key}__icontains': search})
        if search.isdigit():
            query |= Q(estimated_age=int(search))
        beneficiaries = beneficiaries.filter(query)

    paginator = Paginator(beneficiaries, settings.AID_PAGE_SIZE)
    page_obj = paginator.get_page(request.GET.get('page'))

    context = {
        'page_obj': page_obj,
        'search': search,
        'total_count': paginator.count,
    }
    return render(request, 'admin/beneficiary_list.html', context)


@login_required
@user_passes_test(is_admin)
def beneficiary_edit(request, pk):
    beneficiary = get_object_or_404(Beneficiary, pk=pk)
    form = AdminBeneficiaryForm(request.POST or None, instance=beneficiary)

    if request.method == 'POST' and form.is_valid():
        form.save()
        messages.success(request, f"Beneficiary {beneficiary.name} has been updated successfully.")
        return redirect('beneficiary_list')

    return render(request, 'admin/beneficiary_form.html', {'form': form, 'beneficiary': beneficiary})


@login_required
@user_passes_test(is_admin)
@require_POST
def beneficiary_delete(request, pk):
    """Delete a beneficiary with its allocations and fraud alerts"""
    beneficiary = get_object_or_404(Beneficiary, pk=pk)
    name = beneficiary.name
    try:
        allocation_count, alert_count = beneficiary.delete_with_history()
    except Exception as e:
        logger.exception(f"Failed to delete beneficiary {pk}")
        return JsonResponse({'success': False, 'message': f'Error deleting beneficiary: {str(e)}'}, status=500)

    logger.info(f"Beneficiary {pk} deleted by {request.user.username} ({allocation_count} allocations, {alert_count} alerts)")
    return JsonResponse({
        'success': True,
        'message': f'Deleted {name} with {allocation_count} allocations and {alert_count} fraud alerts'
    })


# Disburser management

def disburser_payload(disburser):
    return {
        'id': disburser.id,
        'name': disburser.name,
        'phone_number': disburser.phone_number,
        'region_id': disburser.region_id,
        'region': disburser.region.name,
        'is_active': disburser.is_active,
        'created_at': disburser.created_at.strftime('%Y-%m-%d %H:%M'),
    }


@login_required
@user_passes_test(is_admin)
def disburser_list(request):
    search = request.GET.get('search', '').strip()
    status = request.GET.get('status', '')

    disbursers = Disburser.objects.select_related('region').annotate(
        allocation_count=Count('allocations', distinct=True),
        beneficiary_count=Count('registered_beneficiaries', distinct=True),
    )
    if search:
        disbursers = disbursers.filter(
            Q(name__icontains=search) |
            Q(phone_number__icontains=search) |
            Q(region__name__icontains=search)
        )
    if status == 'active':
        disbursers = disbursers.filter(is_active=True)
    elif status == 'inactive':
        disbursers = disbursers.filter(is_active=False)

    paginator = Paginator(disbursers, settings.AID_PAGE_SIZE)
    page_obj = paginator.get_page(request.GET.get('page'))

    context = {
        'page_obj': page_obj,
        'search': search,
        'status': status,
        'regions': Region.objects.all(),
        'form': DisburserForm(),
    }
    return render(request, 'admin/disburser_list.html', context)


@login_required
@user_passes_test(is_admin)
@require_POST
def disburser_create(request):
    """Create disburser via AJAX"""
    try:
        data = parse_json_body(request)
    except ValueError:
        return JsonResponse({'success': False, 'message': 'Invalid JSON data'}, status=400)

    form = DisburserForm(data)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': form_errors(form)}, status=400)

    with transaction.atomic():
        disburser = form.save()
    logger.info(f"Disburser {disburser.id} created by {request.user.username}")
    return JsonResponse({
        'success': True,
        'message': 'New disburser has been created successfully.',
        'disburser': disburser_payload(disburser),
    })


@login_required
@user_passes_test(is_admin)
def disburser_detail(request, pk):
    disburser = get_object_or_404(Disburser.objects.select_related('region'), pk=pk)
    return JsonResponse({'success': True, 'disburser': disburser_payload(disburser)})


@login_required
@user_passes_test(is_admin)
@require_POST
def disburser_update(request, pk):
    """Update disburser via AJAX; password is only changed when provided"""
    disburser = get_object_or_404(Disburser, pk=pk)
    try:
        data = parse_json_body(request)
    except ValueError:
        return JsonResponse({'success': False, 'message': 'Invalid JSON data'}, status=400)

    form = DisburserForm(data, instance=disburser)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': form_errors(form)}, status=400)

    with transaction.atomic():
        disburser = form.save()
    return JsonResponse({
        'success': True,
        'message': f'Disburser {disburser.name} has been updated successfully.',
        'disburser': disburser_payload(disburser),
    })


@login_required
@user_passes_test(is_admin)
@require_POST
def disburser_toggle_active(request, pk):
    disburser = get_object_or_404(Disburser, pk=pk)
    with transaction.atomic():
        disburser.is_active = not disburser.is_active
        disburser.save(update_fields=['is_active', 'updated_at'])
        User.objects.filter(pk=disburser.user_id).update(is_active=disburser.is_active)

    state = 'activated' if disburser.is_active else 'deactivated'
    return JsonResponse({
        'success': True,
        'message': f'Disburser {disburser.name} has been {state}.',
        'is_active': disburser.is_active,
    })


@login_required
@user_passes_test(is_admin)
@require_POST
def disburser_delete(request, pk):
    """Delete disburser and its login account"""
    disburser = get_object_or_404(Disburser, pk=pk)
    name = disburser.name
    try:
        with transaction.atomic():
            disburser.user.delete()
    except Exception as e:
        logger.exception(f"Failed to delete disburser {pk}")
        return JsonResponse({'success': False, 'message': f'Error deleting disburser: {str(e)}'}, status=500)

    return JsonResponse({'success': True, 'message': f'Disburser {name} has been deleted successfully.'})


# Regions

@login_required
@user_passes_test(is_admin)
def region_list(request):
    form = RegionForm(request.POST or None)
    if request.method == 'POST':
        if form.is_valid():
            region = form.save()
            messages.success(request, f"Region {region.name} created successfully")
            return redirect('region_list')
        messages.error(request, 'Please correct the errors below.')

    regions = Region.objects.annotate(
        beneficiary_count=Count('beneficiaries', distinct=True),
        disburser_count=Count('disbursers', distinct=True),
    )
    return render(request, 'admin/region_list.html', {'regions': regions, 'form': form})


# Goods management

def goods_type_payload(goods_type):
    return {
        'id': goods_type.id,
        'name': goods_type.name,
        'description': goods_type.description or '',
    }


def regional_goods_payload(line):
    return {
        'id': line.id,
        'goods_type_id': line.goods_type_id,
        'goods_type': line.goods_type.name,
        'region_id': line.region_id,
        'region': line.region.name,
        'quantity': line.quantity,
    }


@login_required
@user_passes_test(is_admin)
def goods_list(request):
    region_id = request.GET.get('region', '')

    stock = RegionalGoods.objects.select_related('goods_type', 'region')
    if region_id:
        stock = stock.filter(region_id=region_id)

    goods_types = GoodsType.objects.annotate(total_quantity=Sum('regional_goods__quantity'))

    context = {
        'goods_types': goods_types,
        'stock': stock,
        'regions': Region.objects.all(),
        'current_region': region_id,
        'goods_type_form': GoodsTypeForm(),
        'stock_form': RegionalGoodsForm(),
    }
    return render(request, 'admin/goods_list.html', context)


@login_required
@user_passes_test(is_admin)
@require_POST
def goods_type_create(request):
    try:
        data = parse_json_body(request)
    except ValueError:
        return JsonResponse({'success': False, 'message': 'Invalid JSON data'}, status=400)

    form = GoodsTypeForm(data)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': form_errors(form)}, status=400)

    goods_type = form.save()
    return JsonResponse({
        'success': True,
        'message': f'{goods_type.name} added to the catalog',
        'goods_type': goods_type_payload(goods_type),
    })


@login_required
@user_passes_test(is_admin)
@require_POST
def goods_type_update(request, pk):
    goods_type = get_object_or_404(GoodsType, pk=pk)
    try:
        data = parse_json_body(request)
    except ValueError:
        return JsonResponse({'success': False, 'message': 'Invalid JSON data'}, status=400)

    form = GoodsTypeForm(data, instance=goods_type)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': form_errors(form)}, status=400)

    goods_type = form.save()
    return JsonResponse({
        'success': True,
        'message': f'{goods_type.name} updated successfully',
        'goods_type': goods_type_payload(goods_type),
    })


@login_required
@user_passes_test(is_admin)
@require_POST
def goods_type_delete(request, pk):
    goods_type = get_object_or_404(GoodsType, pk=pk)
    name = goods_type.name
    try:
        goods_type.delete()
    except ProtectedError as e:
        return JsonResponse({'success': False, 'message': f'Cannot delete {name}: {str(e)}'}, status=400)

    return JsonResponse({'success': True, 'message': f'{name} deleted successfully'})


@login_required
@user_passes_test(is_admin)
@require_POST
def regional_goods_create(request):
    try:
        data = parse_json_body(request)
    except ValueError:
        return JsonResponse({'success': False, 'message': 'Invalid JSON data'}, status=400)

    form = RegionalGoodsForm(data)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': form_errors(form)}, status=400)

    line = form.save()
    return JsonResponse({
        'success': True,
        'message': f'{line.goods_type.name} stock added to {line.region.name}',
        'stock': regional_goods_payload(line),
    })


@login_required
@user_passes_test(is_admin)
@require_POST
def regional_goods_update_quantity(request, pk):
    """Set the stock count of one regional line"""
    line = get_object_or_404(RegionalGoods.objects.select_related('goods_type', 'region'), pk=pk)
    try:
        data = parse_json_body(request)
        quantity = int(data.get('quantity'))
    except (TypeError, ValueError):
        return JsonResponse({'success': False, 'message': 'Quantity must be a whole number'}, status=400)

    if quantity < 0:
        return JsonResponse({'success': False, 'message': 'Quantity cannot be negative'}, status=400)

    line.quantity = quantity
    line.save(update_fields=['quantity', 'updated_at'])
    logger.info(f"Stock line {line.id} set to {quantity} by {request.user.username}")
    return JsonResponse({
        'success': True,
        'message': f'{line.goods_type.name} in {line.region.name} updated to {quantity}',
        'stock': regional_goods_payload(line),
    })


# Allocations

def filter_allocations(request):
    """Apply the search and period filters shared by the list and the PDF export"""
    search = request.GET.get('search', '').strip()
    period = request.GET.get('filter', 'all')

    allocations = Allocation.objects.select_related(
        'beneficiary__region', 'disburser'
    ).order_by('-allocated_at')

    if search:
        allocations = allocations.filter(
            Q(beneficiary__name__icontains=search) |
            Q(disburser__name__icontains=search)
        )

    now = timezone.now()
    if period == 'recent':
        allocations = allocations.filter(allocated_at__gte=now - timedelta(days=7))
    elif period == 'month':
        first_of_month = timezone.localtime(now).replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        allocations = allocations.filter(allocated_at__gte=first_of_month)
    else:
        period = 'all'

    return allocations, search, period


def attach_goods_names(allocations, name_cache):
    rows = []
    for allocation in allocations:
        rows.append({
            'allocation': allocation,
            'goods_names': name_cache.names_for(allocation.goods_entries),
        })
    return rows


@login_required
@user_passes_test(is_admin)
def allocation_list(request):
    allocations, search, period = filter_allocations(request)

    paginator = Paginator(allocations, settings.AID_PAGE_SIZE)
    page_obj = paginator.get_page(request.GET.get('page'))

    context = {
        'page_obj': page_obj,
        'rows': attach_goods_names(page_obj, GoodsNameCache()),
        'search': search,
        'current_filter': period,
        'total_count': paginator.count,
    }
    return render(request, 'admin/allocation_list.html', context)


@login_required
@user_passes_test(is_admin)
def allocation_export_pdf(request):
    """
    Generate PDF report of the filtered allocations
    """
    from weasyprint import HTML

    allocations, search, period = filter_allocations(request)

    context = {
        'allocations': allocations,
        'name_cache': GoodsNameCache(),
        'total_allocations': allocations.count(),
        'search': search,
        'period': period,
        'generated_at': datetime.now(),
        'generated_by': request.user,
    }

    html_string = render_to_string('admin/allocation_report_pdf.html', context)
    html = HTML(string=html_string)

    response = HttpResponse(content_type='application/pdf')
    filename = f"allocations_{period}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.pdf"
    response['Content-Disposition'] = f'attachment; filename="{filename}"'

    html.write_pdf(target=response)

    return response


# Fraud alerts

@login_required
@user_passes_test(is_admin)
def alert_list(request):
    alerts = FraudAlert.objects.select_related('beneficiary__region', 'disburser')

    paginator = Paginator(alerts, settings.AID_PAGE_SIZE)
    page_obj = paginator.get_page(request.GET.get('page'))

    if request.GET.get('refresh'):
        messages.info(request, 'Fraud alerts have been updated')

    return render(request, 'admin/alert_list.html', {'page_obj': page_obj, 'total_count': paginator.count})


@login_required
@user_passes_test(is_admin)
def alert_detail(request, pk):
    """Get fraud alert details via AJAX"""
    alert = get_object_or_404(
        FraudAlert.objects.select_related('beneficiary__region', 'disburser__region'), pk=pk
    )
    name_cache = GoodsNameCache()

    return JsonResponse({
        'success': True,
        'alert': {
            'id': alert.id,
            'details': alert.details,
            'attempted_at': alert.attempted_at.isoformat(),
            'location': {
                'latitude': alert.latitude,
                'longitude': alert.longitude,
            } if alert.has_location else None,
            'goods': [name_cache.name_for(goods_id) for goods_id in alert.goods_ids or []],
            'beneficiary': {
                'id': alert.beneficiary.id,
                'name': alert.beneficiary.name,
                'region': alert.beneficiary.region.name,
                'identifier': alert.beneficiary.primary_identifier,
            },
            'disburser': {
                'id': alert.disburser.id,
                'name': alert.disburser.name,
                'phone_number': alert.disburser.phone_number,
                'region': alert.disburser.region.name,
            } if alert.disburser else None,
        }
    })


# Disburser views

@login_required
@user_passes_test(is_disburser)
def disburser_dashboard(request):
    disburser = request.user.disburser_profile

    context = {
        'disburser': disburser,
        'beneficiary_count': Beneficiary.objects.filter(registered_by=disburser).count(),
        'allocation_count': Allocation.objects.filter(disburser=disburser).count(),
        'stock_total': RegionalGoods.objects.filter(region=disburser.region).aggregate(
            total=Sum('quantity'))['total'] or 0,
        'recent_allocations': Allocation.objects.filter(disburser=disburser).select_related('beneficiary')[:5],
        'name_cache': GoodsNameCache(),
    }
    return render(request, 'disburser/dashboard.html', context)


@login_required
@user_passes_test(is_disburser)
def register_beneficiary(request):
    disburser = request.user.disburser_profile
    form = BeneficiaryForm(request.POST or None)

    if request.method == 'POST':
        if form.is_valid():
            beneficiary = form.save(commit=False)
            beneficiary.region = disburser.region
            beneficiary.registered_by = disburser
            beneficiary.save()
            messages.success(request, f"Beneficiary {beneficiary.name} has been registered successfully.")
            return redirect('register_beneficiary')
        messages.error(request, 'Please correct the errors below.')

    context = {
        'form': form,
        'recent_beneficiaries': Beneficiary.objects.filter(registered_by=disburser)[:10],
    }
    return render(request, 'disburser/register_beneficiary.html', context)


@login_required
@user_passes_test(is_disburser)
def allocate_resources(request):
    disburser = request.user.disburser_profile
    form = AllocationForm(request.POST or None, region=disburser.region)
    result = None

    if request.method == 'POST' and form.is_valid():
        beneficiary = form.cleaned_data['beneficiary']
        goods = form.cleaned_data['goods']

        result = submit_allocation(
            beneficiary.id if beneficiary else None,
            disburser.id,
            [line.id for line in goods],
            location=form.location,
            region_id=disburser.region_id,
        )

        if result.outcome == FRAUD_BLOCKED:
            messages.error(request, result.message)
        elif result.outcome == FAILED:
            messages.error(request, result.message)
        else:
            messages.success(request, f"Resources have been successfully allocated to {beneficiary.name}.")
            for warning in result.warnings:
                messages.warning(request, warning)
            return redirect('allocate_resources')
    elif request.method == 'POST':
        messages.error(request, 'Please correct the errors below.')

    context = {
        'form': form,
        'result': result,
        'disburser': disburser,
    }
    return render(request, 'disburser/allocate.html', context)


# Error handlers

def custom_bad_request(request, exception):
    return render(request, 'errors/400.html', status=400)


def custom_permission_denied(request, exception):
    return render(request, 'errors/403.html', status=403)


def custom_page_not_found(request, exception):
    return render(request, 'errors/404.html', status=404)


def custom_server_error(request):
    return render(request, 'errors/500.html', status=500)
