from django.contrib import admin

from .models import Supplier


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    """Browse only: roster changes go through ``suppliers.services`` so the
    stages of the product's targets follow them."""

    list_display = (
        "supplier_name", "product_name", "currency", "unit_price_foreign",
        "unit_price_local", "dmf_registered", "linkage_status",
    )
    list_filter = ("currency", "dmf_registered", "linkage_status")
    search_fields = ("supplier_name", "product_name", "created_by_name")
    readonly_fields = ("product_key", "unit_price_local")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
