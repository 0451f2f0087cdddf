from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from reports.services import (
    autocomplete_names,
    build_pipeline_summary,
    get_pipeline_kpis,
    get_stage_funnel,
    get_supplier_status,
)
from suppliers.models import Supplier
from targets.models import Target
from targets.services import change_stage
from targets.stages import DISPLAY_ORDER, Stage


@pytest.fixture
def pipeline(make_target, make_supplier):
    won = make_target()
    open_target = make_target(account_name="Yuhan", owner_name="Park Sora", quantity_kg=Decimal("500"))
    make_target(account_name="Yuhan", product_name="Cefadroxil API", owner_name="Park Sora")

    stale = make_supplier(dmf_registered=False)
    Supplier.objects.filter(pk=stale.pk).update(created_at=timezone.now() - timedelta(days=2))
    make_supplier(dmf_registered=True, linkage_status=Supplier.LinkageStatus.COMPLETED)
    make_supplier(supplier_name="Zhejiang Yongning")
    change_stage(won.pk, Stage.WON, actor_name="Kim")
    return won, open_target


@pytest.mark.django_db
class TestPipelineSummary:
    def test_kpis(self, pipeline):
        kpis = get_pipeline_kpis()

        assert kpis["total_targets"] == 3
        assert kpis["won_targets"] == 1
        assert kpis["avg_progress"] == pytest.approx(33.3)
        assert kpis["target_revenue"] == Decimal("31590000")
        assert kpis["achieved_revenue"] == Decimal("12636000")
        assert kpis["achievement_rate"] == Decimal("40.00")

    def test_empty_pipeline(self, db):
        kpis = get_pipeline_kpis()

        assert kpis["total_targets"] == 0
        assert kpis["achievement_rate"] == Decimal("0.00")

    def test_funnel_lists_every_stage_in_order(self, pipeline):
        funnel = get_stage_funnel()

        assert [row["stage"] for row in funnel] == [stage.value for stage in DISPLAY_ORDER]
        counts = {row["stage"]: row["count"] for row in funnel}
        assert counts["WON"] == 1
        assert counts["MARKET_RESEARCH"] == 2
        assert counts["LOST"] == 0

    def test_supplier_status_counts_each_supplier_once(self, pipeline):
        status = get_supplier_status()

        assert status == [
            {"product_name": "Cefaclor API", "suppliers": 2, "dmf_registered": 1, "linkage_completed": 1},
            {"product_name": "Cefadroxil API", "suppliers": 0, "dmf_registered": 0, "linkage_completed": 0},
        ]

    def test_summary_respects_the_queryset(self, pipeline):
        summary = build_pipeline_summary(Target.objects.filter(owner_name="Park Sora"))

        assert summary["kpis"]["total_targets"] == 2
        assert summary["owner_distribution"] == [{"owner_name": "Park Sora", "targets": 2}]
        assert summary["account_progress"][0]["account_name"] == "Yuhan"


@pytest.mark.django_db
class TestAutocomplete:
    def test_prefix_is_case_insensitive(self, pipeline):
        names = autocomplete_names("cefa")

        assert names["products"] == ["Cefaclor API", "Cefadroxil API"]
        assert names["accounts"] == []
        assert names["suppliers"] == []

    def test_without_prefix_lists_distinct_names(self, pipeline):
        names = autocomplete_names(limit=1)

        assert names["accounts"] == ["Hanmi Pharm"]
        assert names["suppliers"] == ["Qilu Antibiotics"]
