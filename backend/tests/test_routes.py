# Overview: Pytest coverage for the invoice, proforma and system HTTP endpoints.

from conftest import invoice_payload, line, proforma_payload

from posbooks.models import Organization


class TestSystem:
    def test_health(self, client, db_session):
        response = client.get('/api/system/health')
        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'healthy'
        assert data['checks']['database']['status'] == 'healthy'


class TestTenantHeaders:
    def test_missing_org_header(self, client, db_session, tenant):
        response = client.get('/api/invoices')
        assert response.status_code == 400

    def test_non_numeric_org_header(self, client, db_session, tenant):
        response = client.get('/api/invoices', headers={'X-Org-Id': 'acme'})
        assert response.status_code == 400

    def test_unknown_org(self, client, db_session, tenant):
        response = client.get('/api/invoices', headers={'X-Org-Id': '999999'})
        assert response.status_code == 404

    def test_inactive_org(self, client, db_session, tenant, headers):
        db_session.get(Organization, tenant.id).is_active = False
        db_session.commit()

        response = client.get('/api/invoices', headers=headers)
        assert response.status_code == 404


class TestInvoiceRoutes:
    def _create(self, client, headers, store, customer, product):
        payload = invoice_payload(store, customer, [line(product, "2", "50")])
        return client.post('/api/invoices', json=payload, headers=headers)

    def test_create_and_get(self, client, db_session, tenant, headers, store, customer, product_x):
        response = self._create(client, headers, store, customer, product_x)

        assert response.status_code == 201
        invoice = response.get_json()['invoice']
        assert invoice['reference_number'].startswith('INV-')
        assert invoice['status'] == 'draft'
        assert invoice['created_by'] == 7
        assert len(invoice['lines']) == 1

        fetched = client.get(f"/api/invoices/{invoice['id']}", headers=headers)
        assert fetched.status_code == 200
        assert fetched.get_json()['invoice']['id'] == invoice['id']

    def test_list(self, client, db_session, tenant, headers, store, customer, product_x):
        self._create(client, headers, store, customer, product_x)
        self._create(client, headers, store, customer, product_x)

        response = client.get('/api/invoices?limit=1', headers=headers)

        data = response.get_json()
        assert data['count'] == 2
        assert len(data['items']) == 1

    def test_invalid_payload(self, client, db_session, tenant, headers, store, customer):
        response = client.post('/api/invoices', json={'store_id': store.id, 'customer_id': customer.id, 'lines': []},
                               headers=headers)
        assert response.status_code == 400
        assert 'lines' in response.get_json()['error']

    def test_not_found(self, client, db_session, tenant, headers):
        assert client.get('/api/invoices/424242', headers=headers).status_code == 404
        assert client.post('/api/invoices/424242/approve', headers=headers).status_code == 404

    def test_approve_twice(self, client, db_session, tenant, headers, store, customer, product_x):
        invoice_id = self._create(client, headers, store, customer, product_x).get_json()['invoice']['id']

        first = client.post(f'/api/invoices/{invoice_id}/approve', headers=headers)
        assert first.status_code == 200
        posted = first.get_json()
        assert posted['already_posted'] is False
        assert posted['invoice']['status'] == 'approved'
        assert posted['ledger_entries']

        second = client.post(f'/api/invoices/{invoice_id}/approve', headers=headers)
        assert second.status_code == 200
        again = second.get_json()
        assert again['already_posted'] is True
        assert again['posting_group_id'] == posted['posting_group_id']
        assert len(again['ledger_entries']) == len(posted['ledger_entries'])

    def test_approve_short_stock(self, client, db_session, tenant, headers, store, customer, product_x):
        payload = invoice_payload(store, customer, [line(product_x, "500", "50")])
        invoice_id = client.post('/api/invoices', json=payload, headers=headers).get_json()['invoice']['id']

        response = client.post(f'/api/invoices/{invoice_id}/approve', headers=headers)

        assert response.status_code == 400
        assert response.get_json()['details']['problems']

    def test_reject_requires_reason(self, client, db_session, tenant, headers, store, customer, product_x):
        invoice_id = self._create(client, headers, store, customer, product_x).get_json()['invoice']['id']

        response = client.post(f'/api/invoices/{invoice_id}/reject', json={}, headers=headers)
        assert response.status_code == 400

        response = client.post(f'/api/invoices/{invoice_id}/reject', json={'rejection_reason': 'typo'}, headers=headers)
        assert response.status_code == 200
        assert response.get_json()['invoice']['status'] == 'rejected'

    def test_cancel_requires_reason(self, client, db_session, tenant, headers, store, customer, product_x):
        invoice_id = self._create(client, headers, store, customer, product_x).get_json()['invoice']['id']

        response = client.post(f'/api/invoices/{invoice_id}/cancel', json={}, headers=headers)
        assert response.status_code == 400
        assert response.get_json()['error'] == 'cancellation_reason is required'

        response = client.post(f'/api/invoices/{invoice_id}/cancel', json={'cancellation_reason': 'duplicate'}, headers=headers)
        assert response.status_code == 200
        assert response.get_json()['invoice']['status'] == 'cancelled'

    def test_edit_after_send_is_refused(self, client, db_session, tenant, headers, store, customer, product_x):
        invoice_id = self._create(client, headers, store, customer, product_x).get_json()['invoice']['id']
        client.post(f'/api/invoices/{invoice_id}/send', headers=headers)

        response = client.put(f'/api/invoices/{invoice_id}', json={'notes': 'x'}, headers=headers)
        assert response.status_code == 400
        assert client.delete(f'/api/invoices/{invoice_id}', headers=headers).status_code == 400

    def test_other_tenant_gets_404(self, client, db_session, tenant, other_org, headers, store, customer, product_x):
        invoice_id = self._create(client, headers, store, customer, product_x).get_json()['invoice']['id']

        response = client.get(f'/api/invoices/{invoice_id}', headers={'X-Org-Id': str(other_org.id)})
        assert response.status_code == 404


class TestProformaRoutes:
    def test_convert_once(self, client, db_session, tenant, headers, store, customer, product_x):
        payload = proforma_payload(store, customer, [line(product_x, "2", "50")])
        created = client.post('/api/proformas', json=payload, headers=headers)
        assert created.status_code == 201
        proforma_id = created.get_json()['proforma']['id']
        assert created.get_json()['proforma']['reference_number'].startswith('PF-')

        assert client.post(f'/api/proformas/{proforma_id}/send', headers=headers).status_code == 200

        converted = client.post(f'/api/proformas/{proforma_id}/convert', json={}, headers=headers)
        assert converted.status_code == 201
        assert converted.get_json()['invoice']['proforma_invoice_id'] == proforma_id

        again = client.post(f'/api/proformas/{proforma_id}/convert', json={}, headers=headers)
        assert again.status_code == 409

    def test_reject_and_reopen_validation(self, client, db_session, tenant, headers, store, customer, product_x):
        payload = proforma_payload(store, customer, [line(product_x, "1", "50")])
        proforma_id = client.post('/api/proformas', json=payload, headers=headers).get_json()['proforma']['id']
        client.post(f'/api/proformas/{proforma_id}/send', headers=headers)

        assert client.post(f'/api/proformas/{proforma_id}/reject', json={}, headers=headers).status_code == 400
        assert client.post(f'/api/proformas/{proforma_id}/reopen', json={}, headers=headers).status_code == 400

    def test_not_found(self, client, db_session, tenant, headers):
        assert client.get('/api/proformas/424242', headers=headers).status_code == 404
        assert client.post('/api/proformas/424242/convert', json={}, headers=headers).status_code == 404
