from django.urls import path
from . import views

urlpatterns = [
    # Authentication
    path('', views.login_view, name='login_view'),
    path('logout/', views.logout_view, name='logout_view'),

    # Admin dashboard
    path('dashboard/', views.admin_dashboard, name='admin_dashboard'),

    # Beneficiaries
    path('beneficiaries/', views.beneficiary_list, name='beneficiary_list'),
    path('beneficiaries/<int:pk>/edit/', views.beneficiary_edit, name='beneficiary_edit'),
    path('beneficiaries/<int:pk>/delete/', views.beneficiary_delete, name='beneficiary_delete'),

    # Disbursers
    path('disbursers/', views.disburser_list, name='disburser_list'),
    path('disbursers/create/', views.disburser_create, name='disburser_create'),
    path('disbursers/<int:pk>/', views.disburser_detail, name='disburser_detail'),
    path('disbursers/<int:pk>/update/', views.disburser_update, name='disburser_update'),
    path('disbursers/<int:pk>/toggle-active/', views.disburser_toggle_active, name='disburser_toggle_active'),
    path('disbursers/<int:pk>/delete/', views.disburser_delete, name='disburser_delete'),

    # Regions
    path('regions/', views.region_list, name='region_list'),

    # Goods and stock
    path('goods/', views.goods_list, name='goods_list'),
    path('goods/types/create/', views.goods_type_create, name='goods_type_create'),
    path('goods/types/<int:pk>/update/', views.goods_type_update, name='goods_type_update'),
    path('goods/types/<int:pk>/delete/', views.goods_type_delete, name='goods_type_delete'),
    path('goods/stock/create/', views.regional_goods_create, name='regional_goods_create'),
    path('goods/stock/<int:pk>/quantity/', views.regional_goods_update_quantity, name='regional_goods_update_quantity'),

    # Allocations
    path('allocations/', views.allocation_list, name='allocation_list'),
    path('allocations/export/pdf/', views.allocation_export_pdf, name='allocation_export_pdf'),

    # Fraud alerts
    path('alerts/', views.alert_list, name='alert_list'),
    path('alerts/<int:pk>/', views.alert_detail, name='alert_detail'),

    # Disburser screens
    path('disburser/dashboard/', views.disburser_dashboard, name='disburser_dashboard'),
    path('disburser/register/', views.register_beneficiary, name='register_beneficiary'),
    path('disburser/allocate/', views.allocate_resources, name='allocate_resources'),
]
