import json
from datetime import timedelta

from django.contrib.messages import get_messages
from django.template.loader import render_to_string
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from aid_system.allocation import GoodsNameCache
from aid_system.models import (
    AccountLock, Allocation, Beneficiary, Disburser, FraudAlert, LoginAttempt,
    RegionalGoods, User,
)

from .fixtures import PASSWORD, AidDataMixin


def message_texts(response):
    return [str(message) for message in get_messages(response.wsgi_request)]


class LoginViewTests(AidDataMixin, TestCase):
    def login(self, role, identifier, password):
        return self.client.post(reverse('login_view'), {
            'role': role, 'identifier': identifier, 'password': password,
        })

    def test_admin_signs_in_with_username(self):
        response = self.login('admin', 'admin', PASSWORD)
        self.assertRedirects(response, reverse('admin_dashboard'), fetch_redirect_response=False)
        self.assertTrue(LoginAttempt.objects.filter(identifier='admin', success=True).exists())

    def test_disburser_signs_in_with_phone(self):
        response = self.login('disburser', '+254700000001', PASSWORD)
        self.assertRedirects(response, reverse('disburser_dashboard'), fetch_redirect_response=False)

    def test_wrong_password(self):
        response = self.login('disburser', '+254700000001', 'wrong')
        self.assertEqual(response.status_code, 200)
        self.assertIn('Invalid phone number or password', message_texts(response))
        self.assertFalse(LoginAttempt.objects.get().success)

    def test_unknown_admin(self):
        response = self.login('admin', 'nobody', PASSWORD)
        self.assertIn('Invalid username or password', message_texts(response))

    def test_account_locks_after_repeated_failures(self):
        for _ in range(3):
            self.login('admin', 'admin', 'wrong')

        lock = AccountLock.objects.get(user=self.admin_user)
        self.assertTrue(lock.is_locked)
        self.assertEqual(lock.failed_attempts, 3)

        response = self.login('admin', 'admin', PASSWORD)
        self.assertEqual(response.status_code, 200)
        self.assertNotIn('_auth_user_id', self.client.session)
        self.assertTrue(any('temporarily locked' in text for text in message_texts(response)))

    def test_expired_lock_is_lifted(self):
        AccountLock.objects.create(
            user=self.admin_user, failed_attempts=3, is_locked=True,
            unlock_time=timezone.now() - timedelta(minutes=1),
        )
        response = self.login('admin', 'admin', PASSWORD)
        self.assertEqual(response.status_code, 302)
        lock = AccountLock.objects.get(user=self.admin_user)
        self.assertFalse(lock.is_locked)
        self.assertEqual(lock.failed_attempts, 0)

    def test_deactivated_disburser_cannot_sign_in(self):
        Disburser.objects.filter(pk=self.disburser.pk).update(is_active=False)
        response = self.login('disburser', '+254700000001', PASSWORD)
        self.assertEqual(response.status_code, 200)
        self.assertIn('This account has been deactivated. Contact an administrator.', message_texts(response))

    def test_logout(self):
        self.client.force_login(self.admin_user)
        response = self.client.get(reverse('logout_view'))
        self.assertRedirects(response, reverse('login_view'), fetch_redirect_response=False)
        self.assertNotIn('_auth_user_id', self.client.session)


class AccessTests(AidDataMixin, TestCase):
    def test_anonymous_is_sent_to_login(self):
        response = self.client.get(reverse('beneficiary_list'))
        self.assertEqual(response.status_code, 302)
        self.assertTrue(response['Location'].startswith(reverse('login_view')))

    def test_disburser_cannot_open_admin_screens(self):
        self.client.force_login(self.disburser.user)
        self.assertEqual(self.client.get(reverse('allocation_list')).status_code, 302)

    def test_admin_cannot_open_disburser_screens(self):
        self.client.force_login(self.admin_user)
        self.assertEqual(self.client.get(reverse('allocate_resources')).status_code, 302)


class AdminViewTests(AidDataMixin, TestCase):
    def setUp(self):
        self.client.force_login(self.admin_user)

    def post_json(self, name, payload=None, **kwargs):
        return self.client.post(
            reverse(name, kwargs=kwargs or None),
            data=json.dumps(payload or {}),
            content_type='application/json',
        )

    def test_dashboard(self):
        Allocation.objects.create(
            beneficiary=self.beneficiary, disburser=self.disburser,
            goods=[{'goods_id': self.water.id, 'name': 'Water Container', 'quantity': 1}],
        )
        response = self.client.get(reverse('admin_dashboard'), {'range': 'month'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['time_range'], 'month')
        self.assertEqual(response.context['stats']['allocations']['total'], 1)
        self.assertIsNotNone(response.context['allocation_chart'])

    def test_beneficiary_search_by_identifier(self):
        Beneficiary.objects.create(name='Other Person', estimated_age=50, height='160.0', region=self.south)
        response = self.client.get(reverse('beneficiary_list'), {'search': '12345678'})
        self.assertEqual([b.name for b in response.context['page_obj']], ['Juma Wanjiru'])

    def test_beneficiary_edit(self):
        response = self.client.post(reverse('beneficiary_edit', args=[self.beneficiary.id]), {
            'name': 'Juma W.', 'estimated_age': 35, 'height': '172.5', 'region': self.south.id,
            'national_id': '', 'passport': 'P998877', 'birth_certificate': '',
        })
        self.assertRedirects(response, reverse('beneficiary_list'), fetch_redirect_response=False)
        beneficiary = Beneficiary.objects.get(pk=self.beneficiary.pk)
        self.assertEqual(beneficiary.region, self.south)
        self.assertEqual(beneficiary.unique_identifiers, {'passport': 'P998877'})

    def test_beneficiary_delete_removes_history(self):
        Allocation.objects.create(beneficiary=self.beneficiary, disburser=self.disburser, goods=[])
        FraudAlert.objects.create(beneficiary=self.beneficiary, disburser=self.disburser, details='dup')

        response = self.post_json('beneficiary_delete', pk=self.beneficiary.id)
        self.assertTrue(response.json()['success'])
        self.assertFalse(Beneficiary.objects.filter(pk=self.beneficiary.pk).exists())
        self.assertFalse(Allocation.objects.exists())
        self.assertFalse(FraudAlert.objects.exists())

    def test_disburser_create(self):
        response = self.post_json('disburser_create', {
            'name': 'Peter Kamau', 'phone_number': '+254711222333', 'region': self.south.id,
            'is_active': True, 'password': 'An0ther-Str0ng-pass',
        })
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload['success'])
        self.assertEqual(payload['disburser']['region'], 'South')

        disburser = Disburser.objects.get(phone_number='+254711222333')
        self.assertEqual(disburser.user.user_type, 'disburser')
        self.assertTrue(disburser.user.check_password('An0ther-Str0ng-pass'))
        self.assertNotEqual(disburser.user.password, 'An0ther-Str0ng-pass')

    def test_disburser_create_requires_password(self):
        response = self.post_json('disburser_create', {
            'name': 'Peter Kamau', 'phone_number': '+254711222333', 'region': self.south.id, 'is_active': True,
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('password', response.json()['errors'])

    def test_disburser_create_rejects_bad_json(self):
        response = self.client.post(reverse('disburser_create'), data='not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)

    def test_disburser_update_keeps_password(self):
        response = self.post_json('disburser_update', {
            'name': 'Amina O.', 'phone_number': '+254700000001', 'region': self.north.id, 'is_active': True,
        }, pk=self.disburser.id)
        self.assertTrue(response.json()['success'])
        user = User.objects.get(pk=self.disburser.user_id)
        self.assertEqual(user.first_name, 'Amina O.')
        self.assertTrue(user.check_password(PASSWORD))

    def test_disburser_toggle_active(self):
        response = self.post_json('disburser_toggle_active', pk=self.disburser.id)
        self.assertFalse(response.json()['is_active'])
        self.assertFalse(User.objects.get(pk=self.disburser.user_id).is_active)

        response = self.post_json('disburser_toggle_active', pk=self.disburser.id)
        self.assertTrue(response.json()['is_active'])

    def test_disburser_detail_and_delete(self):
        other = self.make_disburser('Spare', '+254700000099', self.south)
        response = self.client.get(reverse('disburser_detail', args=[other.id]))
        self.assertEqual(response.json()['disburser']['phone_number'], '+254700000099')

        response = self.post_json('disburser_delete', pk=other.id)
        self.assertTrue(response.json()['success'])
        self.assertFalse(User.objects.filter(pk=other.user_id).exists())

    def test_region_create(self):
        response = self.client.post(reverse('region_list'), {'name': 'East'})
        self.assertRedirects(response, reverse('region_list'), fetch_redirect_response=False)
        response = self.client.get(reverse('region_list'))
        self.assertIn('East', [region.name for region in response.context['regions']])

    def test_goods_type_crud(self):
        response = self.post_json('goods_type_create', {'name': 'Medical Kit', 'description': 'First aid'})
        goods_type_id = response.json()['goods_type']['id']

        response = self.post_json('goods_type_update', {'name': 'Medical Kit XL'}, pk=goods_type_id)
        self.assertEqual(response.json()['goods_type']['name'], 'Medical Kit XL')

        response = self.post_json('goods_type_delete', pk=goods_type_id)
        self.assertTrue(response.json()['success'])

    def test_duplicate_stock_line_is_rejected(self):
        response = self.post_json('regional_goods_create', {
            'goods_type': self.water.id, 'region': self.north.id, 'quantity': 4,
        })
        self.assertEqual(response.status_code, 400)

    def test_set_stock_quantity(self):
        response = self.post_json('regional_goods_update_quantity', {'quantity': 12}, pk=self.water_north.id)
        self.assertEqual(response.json()['stock']['quantity'], 12)
        self.assertEqual(RegionalGoods.objects.get(pk=self.water_north.pk).quantity, 12)

    def test_negative_stock_quantity_is_rejected(self):
        response = self.post_json('regional_goods_update_quantity', {'quantity': -1}, pk=self.water_north.id)
        self.assertEqual(response.status_code, 400)
        response = self.post_json('regional_goods_update_quantity', {'quantity': 'lots'}, pk=self.water_north.id)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(RegionalGoods.objects.get(pk=self.water_north.pk).quantity, 3)

    def test_allocation_list_filters(self):
        Allocation.objects.create(
            beneficiary=self.beneficiary, disburser=self.disburser,
            goods=[{'goods_id': self.water.id, 'name': '', 'quantity': 1}],
        )
        Allocation.objects.create(
            beneficiary=self.beneficiary, disburser=self.disburser, goods=[],
            allocated_at=timezone.now() - timedelta(days=60),
        )

        response = self.client.get(reverse('allocation_list'))
        self.assertEqual(response.context['total_count'], 2)

        response = self.client.get(reverse('allocation_list'), {'filter': 'recent'})
        self.assertEqual(response.context['total_count'], 1)
        self.assertEqual(response.context['rows'][0]['goods_names'], ['Water Container'])

        response = self.client.get(reverse('allocation_list'), {'filter': 'bogus'})
        self.assertEqual(response.context['current_filter'], 'all')

    def test_alert_list_and_detail(self):
        alert = FraudAlert.objects.create(
            beneficiary=self.beneficiary, disburser=self.disburser,
            goods_ids=[self.hygiene.id], details='Attempted duplicate allocation: Hygiene Kit',
            latitude=0.5, longitude=35.2,
        )
        response = self.client.get(reverse('alert_list'), {'refresh': '1'})
        self.assertEqual(response.context['total_count'], 1)
        self.assertIn('Fraud alerts have been updated', message_texts(response))

        payload = self.client.get(reverse('alert_detail', args=[alert.id])).json()['alert']
        self.assertEqual(payload['goods'], ['Hygiene Kit'])
        self.assertEqual(payload['beneficiary']['identifier'], '12345678')
        self.assertEqual(payload['location'], {'latitude': 0.5, 'longitude': 35.2})
        self.assertEqual(payload['disburser']['region'], 'North')


class DisburserViewTests(AidDataMixin, TestCase):
    def setUp(self):
        self.client.force_login(self.disburser.user)

    def test_dashboard(self):
        response = self.client.get(reverse('disburser_dashboard'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['beneficiary_count'], 1)
        self.assertEqual(response.context['stock_total'], 13)

    def test_register_beneficiary_uses_own_region(self):
        response = self.client.post(reverse('register_beneficiary'), {
            'name': 'Wanjiku Mwangi', 'estimated_age': 8, 'height': '121.0',
            'national_id': '', 'passport': '', 'birth_certificate': 'BC-4455',
        })
        self.assertRedirects(response, reverse('register_beneficiary'), fetch_redirect_response=False)
        beneficiary = Beneficiary.objects.get(name='Wanjiku Mwangi')
        self.assertEqual(beneficiary.region, self.north)
        self.assertEqual(beneficiary.registered_by, self.disburser)
        self.assertEqual(beneficiary.primary_identifier, 'BC-4455')

    def test_register_rejects_zero_height(self):
        response = self.client.post(reverse('register_beneficiary'), {
            'name': 'Nobody', 'estimated_age': 8, 'height': '0',
        })
        self.assertEqual(response.status_code, 200)
        self.assertIn('height', response.context['form'].errors)

    def test_register_rejects_negative_age(self):
        response = self.client.post(reverse('register_beneficiary'), {
            'name': 'Nobody', 'estimated_age': -1, 'height': '120.0',
        })
        self.assertEqual(response.status_code, 200)
        self.assertIn('estimated_age', response.context['form'].errors)
        self.assertFalse(Beneficiary.objects.filter(name='Nobody').exists())

    def test_allocate_then_duplicate_is_blocked(self):
        response = self.client.post(reverse('allocate_resources'), {
            'beneficiary': self.beneficiary.id,
            'goods': [self.water_north.id],
            'latitude': '-0.42', 'longitude': '36.95',
        })
        self.assertRedirects(response, reverse('allocate_resources'), fetch_redirect_response=False)
        self.assertEqual(RegionalGoods.objects.get(pk=self.water_north.pk).quantity, 2)
        self.assertIn('Resources have been successfully allocated to Juma Wanjiru.', message_texts(response))

        response = self.client.post(reverse('allocate_resources'), {
            'beneficiary': self.beneficiary.id,
            'goods': [self.hygiene_north.id],
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['result'].outcome, 'fraud_blocked')
        self.assertIn(
            'This beneficiary has recently received an allocation. Duplicate prevented.',
            message_texts(response),
        )
        self.assertEqual(FraudAlert.objects.count(), 1)
        self.assertEqual(RegionalGoods.objects.get(pk=self.hygiene_north.pk).quantity, 10)

    def test_allocate_without_goods(self):
        response = self.client.post(reverse('allocate_resources'), {'beneficiary': self.beneficiary.id})
        self.assertEqual(response.status_code, 200)
        self.assertIn('Please select at least one aid item', message_texts(response))
        self.assertFalse(Allocation.objects.exists())

    def test_allocate_form_only_offers_own_region(self):
        response = self.client.get(reverse('allocate_resources'))
        goods = response.context['form'].fields['goods'].queryset
        self.assertNotIn(self.water_south, list(goods))
        self.assertEqual(goods.count(), 3)


class EditActionTests(AidDataMixin, TestCase):
    def setUp(self):
        self.client.force_login(self.admin_user)

    def test_disburser_list_offers_edit(self):
        response = self.client.get(reverse('disburser_list'))
        self.assertContains(response, reverse('disburser_detail', args=[self.disburser.id]))
        self.assertContains(response, reverse('disburser_update', args=[self.disburser.id]))

    def test_goods_list_offers_edit(self):
        response = self.client.get(reverse('goods_list'))
        self.assertContains(response, reverse('goods_type_update', args=[self.hygiene.id]))


class GoodsNameRenderingTests(AidDataMixin, TestCase):
    @classmethod
    def setUpTestData(cls):
        super().setUpTestData()
        Allocation.objects.create(beneficiary=cls.beneficiary, disburser=cls.disburser, goods=[cls.hygiene.id])

    def test_report_resolves_bare_goods_ids(self):
        html = render_to_string('admin/allocation_report_pdf.html', {
            'allocations': Allocation.objects.select_related('beneficiary__region', 'disburser'),
            'name_cache': GoodsNameCache(),
            'total_allocations': 1,
            'period': 'all',
            'generated_at': timezone.now(),
            'generated_by': self.admin_user,
        })
        self.assertIn('<td>Hygiene Kit</td>', html)
        self.assertNotIn('No items', html)

    def test_disburser_dashboard_resolves_bare_goods_ids(self):
        self.client.force_login(self.disburser.user)
        response = self.client.get(reverse('disburser_dashboard'))
        self.assertContains(response, 'Hygiene Kit')


class SuperuserLoginTests(TestCase):
    def test_created_superuser_signs_in_as_admin(self):
        user = User.objects.create_superuser('root', 'root@example.org', PASSWORD)
        self.assertEqual(user.user_type, 'admin')

        response = self.client.post(reverse('login_view'), {
            'role': 'admin', 'identifier': 'root', 'password': PASSWORD,
        })
        self.assertRedirects(response, reverse('admin_dashboard'), fetch_redirect_response=False)
