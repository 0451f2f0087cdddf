from decimal import Decimal
import uuid

import pytest

from conftest import target_payload
from core.exceptions import ImportValidationError, NotFoundError, SupplierRequiredError
from targets.models import StageHistory, Target
from targets.services import change_stage, create_target, delete_target, stage_history, update_target
from targets.stages import Stage


@pytest.mark.django_db
class TestCreateTarget:
    def test_starts_at_market_research_with_history(self, target):
        assert target.current_stage == Stage.MARKET_RESEARCH
        assert target.stage_progress_rate == 0
        assert target.product_key == "cefaclor api"

        entry = target.stage_history.get()
        assert entry.stage == Stage.MARKET_RESEARCH
        assert entry.actor_name == "Lee Jisoo"
        assert entry.comment == "New target registered"

    def test_stores_derived_pricing(self, target):
        target.refresh_from_db()

        assert target.current_unit_price_local == Decimal("14040")
        assert target.current_total_local == Decimal("14040000")
        assert target.estimate_unit_price_local == Decimal("12636")
        assert target.estimate_revenue_local == Decimal("12636000")
        assert target.saving_per_unit == Decimal("1404")
        assert target.total_saving == Decimal("1404000")
        assert target.saving_rate == Decimal("0.1")

    def test_savings_stay_empty_without_current_price(self, make_target):
        target = make_target(
            current_currency=None,
            current_unit_price_foreign=None,
            current_fx_rate=None,
            current_tariff_rate=None,
            current_additional_cost_rate=None,
        )
        target.refresh_from_db()

        assert target.current_unit_price_local is None
        assert target.current_total_local is None
        assert target.saving_per_unit is None
        assert target.total_saving is None
        assert target.saving_rate is None

    def test_local_currency_estimate_ignores_fx_rate(self, make_target):
        target = make_target(
            estimate_currency="KRW",
            estimate_unit_price_foreign=Decimal("12000"),
            estimate_fx_rate=Decimal("1300"),
            estimate_tariff_rate=Decimal("0"),
            estimate_additional_cost_rate=Decimal("0"),
        )

        assert target.estimate_fx_rate == Decimal("1")
        assert target.estimate_unit_price_local == Decimal("12000")

    def test_partial_current_price_is_rejected(self, db):
        with pytest.raises(ValueError):
            create_target(**target_payload(current_unit_price_foreign=None))

        assert Target.objects.count() == 0
        assert StageHistory.objects.count() == 0

    def test_missing_rates_default_to_zero(self, make_target):
        target = make_target(current_tariff_rate=None, current_additional_cost_rate=None)

        assert target.current_tariff_rate == Decimal("0")
        assert target.current_unit_price_local == Decimal("13000")

    def test_duplicate_account_and_product_is_rejected(self, target):
        with pytest.raises(ImportValidationError):
            create_target(**target_payload())

        assert Target.objects.count() == 1

    def test_stage_cannot_be_set_on_creation(self, db):
        with pytest.raises(ValueError):
            create_target(**target_payload(current_stage=Stage.WON))


@pytest.mark.django_db
class TestChangeStage:
    def test_same_stage_is_a_no_op(self, target):
        change_stage(target.pk, Stage.MARKET_RESEARCH, actor_name="Kim")

        assert target.stage_history.count() == 1

    def test_supplier_backed_stage_needs_a_supplier(self, target):
        with pytest.raises(SupplierRequiredError):
            change_stage(target.pk, Stage.SOURCING_COMPLETED, actor_name="Kim")

        target.refresh_from_db()
        assert target.current_stage == Stage.MARKET_RESEARCH
        assert target.stage_history.count() == 1

    @pytest.mark.parametrize("stage", [Stage.QUOTE_SENT, Stage.WON, Stage.COMMERCIAL_PO])
    def test_every_later_stage_needs_a_supplier(self, target, stage):
        with pytest.raises(SupplierRequiredError):
            change_stage(target.pk, stage, actor_name="Kim")

    def test_moves_when_a_matching_supplier_exists(self, target, make_supplier):
        make_supplier(product_name="  CEFACLOR   api ")

        changed = change_stage(target.pk, Stage.QUOTE_SENT, actor_name="Kim", comment="Quote mailed")

        assert changed.current_stage == Stage.QUOTE_SENT
        assert changed.stage_progress_rate == 20
        assert changed.stage_updated_at is not None
        entry = changed.stage_history.first()
        assert entry.from_stage == Stage.MARKET_RESEARCH
        assert entry.stage == Stage.QUOTE_SENT
        assert entry.actor_name == "Kim"
        assert entry.comment == "Quote mailed"

    def test_supplier_of_another_product_does_not_count(self, target, make_supplier):
        make_supplier(product_name="Cefaclor-API")

        with pytest.raises(SupplierRequiredError):
            change_stage(target.pk, Stage.SOURCING_COMPLETED, actor_name="Kim")

    @pytest.mark.parametrize("stage,progress", [(Stage.SOURCING_REQUEST, 5), (Stage.LOST, 0), (Stage.ON_HOLD, 50)])
    def test_stages_without_supplier_requirement(self, target, stage, progress):
        changed = change_stage(target.pk, stage, actor_name="Kim")

        assert changed.current_stage == stage
        assert changed.stage_progress_rate == progress
        assert changed.stage_history.first().comment is None

    def test_backward_moves_are_allowed(self, target, make_supplier):
        make_supplier()
        change_stage(target.pk, Stage.PRICE_AGREED, actor_name="Kim")

        changed = change_stage(target.pk, Stage.MARKET_RESEARCH, actor_name="Kim")

        assert changed.current_stage == Stage.MARKET_RESEARCH
        assert changed.stage_history.count() == 3

    def test_unknown_stage(self, target):
        with pytest.raises(ImportValidationError):
            change_stage(target.pk, "SIGNED", actor_name="Kim")

    def test_missing_target(self, db):
        with pytest.raises(NotFoundError):
            change_stage(uuid.uuid4(), Stage.LOST, actor_name="Kim")
        with pytest.raises(NotFoundError):
            change_stage("not-a-uuid", Stage.LOST, actor_name="Kim")

    def test_actor_defaults_to_system(self, target):
        change_stage(target.pk, Stage.ON_HOLD)

        assert target.stage_history.first().actor_name == "System"


@pytest.mark.django_db
class TestUpdateTarget:
    def test_edit_recomputes_totals_and_keeps_stage(self, target, make_supplier):
        make_supplier()
        change_stage(target.pk, Stage.QUOTE_SENT, actor_name="Kim")

        updated = update_target(target.pk, quantity_kg=Decimal("2000"), note="Volume doubled")

        assert updated.current_stage == Stage.QUOTE_SENT
        assert updated.current_total_local == Decimal("28080000")
        assert updated.total_saving == Decimal("2808000")
        assert updated.note == "Volume doubled"

    def test_clearing_current_price_clears_savings(self, target):
        updated = update_target(
            target.pk,
            current_currency=None,
            current_unit_price_foreign=None,
            current_fx_rate=None,
            current_tariff_rate=None,
            current_additional_cost_rate=None,
        )

        assert updated.saving_rate is None
        assert updated.total_saving is None

    def test_stage_cannot_be_edited(self, target):
        with pytest.raises(ValueError):
            update_target(target.pk, current_stage=Stage.WON)

    def test_renaming_product_without_suppliers_rolls_back(self, target, make_supplier):
        make_supplier()
        change_stage(target.pk, Stage.QUALIFICATION, actor_name="Kim")

        updated = update_target(target.pk, product_name="Cefadroxil API")

        assert updated.current_stage == Stage.SOURCING_REQUEST
        assert updated.stage_progress_rate == 5
        assert "QUALIFICATION" in updated.stage_history.first().comment


@pytest.mark.django_db
class TestStageHistory:
    def test_entries_are_immutable(self, target):
        entry = target.stage_history.get()

        entry.comment = "edited"
        with pytest.raises(ValueError):
            entry.save()
        with pytest.raises(ValueError):
            entry.delete()

    def test_history_is_newest_first(self, target):
        change_stage(target.pk, Stage.SOURCING_REQUEST, actor_name="Kim")

        stages = [entry.stage for entry in stage_history(target.pk)]

        assert stages == [Stage.SOURCING_REQUEST, Stage.MARKET_RESEARCH]

    def test_deleting_a_target_removes_its_history(self, target):
        delete_target(target.pk)

        assert Target.objects.count() == 0
        assert StageHistory.objects.count() == 0


@pytest.mark.django_db
class TestExchangeRates:
    def test_foreign_estimate_needs_a_rate(self, db):
        with pytest.raises(ValueError):
            create_target(**target_payload(estimate_fx_rate=None))

        assert Target.objects.count() == 0

    def test_switching_from_local_currency_needs_a_rate(self, make_target):
        target = make_target(
            estimate_currency="KRW",
            estimate_unit_price_foreign=Decimal("12000"),
            estimate_fx_rate=None,
        )

        with pytest.raises(ImportValidationError) as excinfo:
            update_target(target.pk, estimate_currency="USD", estimate_unit_price_foreign=Decimal("9"))

        assert excinfo.value.field == "estimate_fx_rate"
        target.refresh_from_db()
        assert target.estimate_currency == "KRW"

        updated = update_target(
            target.pk,
            estimate_currency="USD",
            estimate_unit_price_foreign=Decimal("9"),
            estimate_fx_rate=Decimal("1300"),
        )
        assert updated.estimate_unit_price_local == Decimal("12636")

    def test_same_currency_keeps_its_rate(self, target):
        updated = update_target(target.pk, estimate_currency="usd", estimate_unit_price_foreign=Decimal("8"))

        assert updated.estimate_fx_rate == Decimal("1300")


@pytest.mark.django_db
class TestStoredPrecision:
    def test_inputs_are_rounded_before_pricing(self, make_target):
        target = make_target(quantity_kg=Decimal("1.23456"), current_fx_rate=Decimal("1300.00004"))

        assert target.quantity_kg == Decimal("1.235")
        assert target.current_fx_rate == Decimal("1300.0000")
        assert target.current_total_local == Decimal("17339.40")

    def test_stage_change_does_not_move_amounts(self, make_target, make_supplier):
        target = make_target(quantity_kg=Decimal("1.23456"))
        target.refresh_from_db()
        before = (target.current_total_local, target.estimate_revenue_local, target.total_saving)
        make_supplier()

        change_stage(target.pk, Stage.QUOTE_SENT, actor_name="Kim")

        target.refresh_from_db()
        assert (target.current_total_local, target.estimate_revenue_local, target.total_saving) == before


@pytest.mark.django_db
class TestSupplierLocking:
    def test_guarded_stage_change_locks_the_product_suppliers(self, target, make_supplier, monkeypatch):
        from targets import services

        make_supplier()
        locked = []
        original = services.lock_product_suppliers

        def spy(product_name):
            locked.append(product_name)
            return original(product_name)

        monkeypatch.setattr(services, "lock_product_suppliers", spy)

        change_stage(target.pk, Stage.QUOTE_SENT, actor_name="Kim")
        change_stage(target.pk, Stage.ON_HOLD, actor_name="Kim")

        assert locked == ["Cefaclor API"]

    def test_product_rename_locks_the_new_product_suppliers(self, target, make_supplier, monkeypatch):
        from targets import services

        make_supplier()
        make_supplier(product_name="Cefadroxil API")
        change_stage(target.pk, Stage.QUOTE_SENT, actor_name="Kim")
        locked = []
        monkeypatch.setattr(services, "lock_product_suppliers", lambda name: locked.append(name) or [])

        updated = update_target(target.pk, product_name="Cefadroxil API")

        assert locked == ["Cefadroxil API"]
        assert updated.current_stage == Stage.QUOTE_SENT
