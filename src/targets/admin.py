from django.contrib import admin

from .models import StageHistory, Target


class StageHistoryInline(admin.TabularInline):
    model = StageHistory
    extra = 0
    can_delete = False
    readonly_fields = ("from_stage", "stage", "changed_at", "actor_name", "comment")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Target)
class TargetAdmin(admin.ModelAdmin):
    list_display = (
        "account_name", "product_name", "owner_name", "current_stage",
        "stage_progress_rate", "estimate_revenue_local", "total_saving",
    )
    list_filter = ("current_stage", "segment", "year")
    search_fields = ("account_name", "product_name", "owner_name")
    readonly_fields = (
        "product_key", "current_stage", "stage_progress_rate", "stage_updated_at",
        "current_unit_price_local", "current_total_local",
        "estimate_unit_price_local", "estimate_revenue_local",
        "saving_per_unit", "total_saving", "saving_rate",
    )
    inlines = [StageHistoryInline]
    date_hierarchy = "created_at"

    # Creation and edits go through targets.services (history, rollback on rename).
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(StageHistory)
class StageHistoryAdmin(admin.ModelAdmin):
    list_display = ("target", "from_stage", "stage", "actor_name", "changed_at")
    list_filter = ("stage",)
    search_fields = ("target__account_name", "target__product_name", "actor_name")
    list_select_related = ("target",)

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
