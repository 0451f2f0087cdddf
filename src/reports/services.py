"""Service functions for the reports app.

Read-only aggregates over targets and supplier rosters, shared by the API
and by scheduled jobs.
"""
from decimal import Decimal

from django.db.models import Avg, Count, Sum, Value
from django.db.models.functions import Coalesce

from suppliers.models import Supplier
from targets.models import Target
from targets.stages import DISPLAY_ORDER, STAGE_PROGRESS, Stage

TOP_ACCOUNTS = 10


def _percent(part, whole) -> Decimal:
    if not whole:
        return Decimal("0.00")
    return (Decimal(part) * 100 / Decimal(whole)).quantize(Decimal("0.01"))


def _money_sum(queryset, field_name) -> Decimal:
    return queryset.aggregate(
        total=Coalesce(Sum(field_name), Value(Decimal("0.00")))
    )["total"]


def get_pipeline_kpis(queryset=None) -> dict:
    qs = Target.objects.all() if queryset is None else queryset
    agg = qs.aggregate(total=Count("id"), avg_progress=Avg("stage_progress_rate"))
    won = qs.filter(current_stage=Stage.WON)
    target_revenue = _money_sum(qs, "estimate_revenue_local")
    achieved_revenue = _money_sum(won, "estimate_revenue_local")
    return {
        "total_targets": agg["total"],
        "avg_progress": round(float(agg["avg_progress"] or 0), 1),
        "won_targets": won.count(),
        "target_revenue": target_revenue,
        "achieved_revenue": achieved_revenue,
        "achievement_rate": _percent(achieved_revenue, target_revenue),
    }


def get_stage_funnel(queryset=None) -> list:
    qs = Target.objects.all() if queryset is None else queryset
    counts = dict(qs.values_list("current_stage").annotate(count=Count("id")).order_by())
    return [
        {
            "stage": stage.value,
            "label": stage.label,
            "progress": STAGE_PROGRESS[stage],
            "count": counts.get(stage.value, 0),
        }
        for stage in DISPLAY_ORDER
    ]


def get_account_progress(queryset=None, limit: int = TOP_ACCOUNTS) -> list:
    qs = Target.objects.all() if queryset is None else queryset
    rows = (
        qs.values("account_name")
        .annotate(targets=Count("id"), avg_progress=Avg("stage_progress_rate"))
        .order_by("-targets", "account_name")[:limit]
    )
    return [
        {
            "account_name": row["account_name"],
            "targets": row["targets"],
            "avg_progress": round(float(row["avg_progress"] or 0), 1),
        }
        for row in rows
    ]


def get_owner_distribution(queryset=None) -> list:
    qs = Target.objects.all() if queryset is None else queryset
    return list(
        qs.values("owner_name")
        .annotate(targets=Count("id"))
        .order_by("-targets", "owner_name")
    )


def get_supplier_status(queryset=None) -> list:
    """Per product: how many suppliers have a DMF and a completed linkage review.

    Duplicate records of one supplier count once (the newest wins).
    """
    qs = Target.objects.all() if queryset is None else queryset
    product_names = {}
    for product_key, product_name in qs.order_by("created_at").values_list("product_key", "product_name"):
        product_names.setdefault(product_key, product_name)

    latest = {}
    suppliers = Supplier.objects.filter(product_key__in=list(product_names)).order_by("product_key", "-created_at")
    for supplier in suppliers:
        latest.setdefault((supplier.product_key, supplier.supplier_name), supplier)

    status = {
        key: {"product_name": name, "suppliers": 0, "dmf_registered": 0, "linkage_completed": 0}
        for key, name in product_names.items()
    }
    for (product_key, _), supplier in latest.items():
        entry = status[product_key]
        entry["suppliers"] += 1
        entry["dmf_registered"] += int(supplier.dmf_registered)
        entry["linkage_completed"] += int(supplier.linkage_status == Supplier.LinkageStatus.COMPLETED)
    return sorted(status.values(), key=lambda entry: entry["product_name"])


def build_pipeline_summary(queryset=None) -> dict:
    return {
        "kpis": get_pipeline_kpis(queryset),
        "stage_funnel": get_stage_funnel(queryset),
        "account_progress": get_account_progress(queryset),
        "owner_distribution": get_owner_distribution(queryset),
        "supplier_status": get_supplier_status(queryset),
    }


def autocomplete_names(prefix: str = "", limit: int = 20) -> dict:
    """Distinct account, product and supplier names starting with ``prefix``."""
    prefix = (prefix or "").strip()

    def distinct(queryset, field_name):
        if prefix:
            queryset = queryset.filter(**{f"{field_name}__istartswith": prefix})
        return list(
            queryset.order_by(field_name)
            .values_list(field_name, flat=True)
            .distinct()[:limit]
        )

    return {
        "accounts": distinct(Target.objects.all(), "account_name"),
        "products": distinct(Target.objects.all(), "product_name"),
        "suppliers": distinct(Supplier.objects.all(), "supplier_name"),
    }
