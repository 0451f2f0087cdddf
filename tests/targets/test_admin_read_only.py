import pytest
from django.contrib import admin
from django.test import RequestFactory

from suppliers.models import Supplier
from targets.models import Target


@pytest.fixture
def admin_request(django_user_model):
    request = RequestFactory().get("/admin/")
    request.user = django_user_model.objects.create_superuser(username="root", password="x")
    return request


@pytest.mark.django_db
class TestAdminIsReadOnly:
    def test_supplier_roster_cannot_be_changed_from_admin(self, admin_request, make_supplier):
        model_admin = admin.site._registry[Supplier]
        supplier = make_supplier()

        assert model_admin.has_view_permission(admin_request, supplier)
        assert not model_admin.has_add_permission(admin_request)
        assert not model_admin.has_change_permission(admin_request, supplier)
        assert not model_admin.has_delete_permission(admin_request, supplier)

    def test_targets_cannot_be_added_or_edited_from_admin(self, admin_request, target):
        model_admin = admin.site._registry[Target]

        assert model_admin.has_view_permission(admin_request, target)
        assert not model_admin.has_add_permission(admin_request)
        assert not model_admin.has_change_permission(admin_request, target)
