import pytest

from suppliers.models import Supplier
from suppliers.services import create_supplier, delete_supplier, delete_suppliers_by_name
from targets.consistency import count_suppliers, on_supplier_added, on_supplier_removed
from targets.services import change_stage
from targets.stages import Stage


def supplier_fields(**overrides):
    fields = {
        "product_name": "Cefaclor API",
        "supplier_name": "Qilu Antibiotics",
        "created_by_name": "Park Sora",
        "currency": "USD",
        "unit_price_foreign": "8.5",
        "fx_rate": "1300",
    }
    fields.update(overrides)
    return fields


@pytest.mark.django_db
class TestSupplierAdded:
    def test_advances_pre_sourcing_targets(self, make_target):
        researching = make_target(account_name="Hanmi Pharm")
        requested = make_target(account_name="Chong Kun Dang")
        change_stage(requested.pk, Stage.SOURCING_REQUEST, actor_name="Kim")

        result = create_supplier(actor_name="Park Sora", **supplier_fields(product_name="cefaclor  API"))

        for target in (researching, requested):
            target.refresh_from_db()
            assert target.current_stage == Stage.SOURCING_COMPLETED
            assert target.stage_progress_rate == 10
        assert set(result.affected_target_ids) == {researching.pk, requested.pk}

        entry = requested.stage_history.first()
        assert entry.from_stage == Stage.SOURCING_REQUEST
        assert entry.actor_name == "Park Sora"
        assert entry.comment == "1 supplier(s) registered (SOURCING_REQUEST -> SOURCING_COMPLETED)"

    def test_leaves_later_and_side_stages_alone(self, make_target, make_supplier):
        make_supplier()
        quoted = make_target(account_name="Hanmi Pharm")
        change_stage(quoted.pk, Stage.QUOTE_SENT, actor_name="Kim")
        lost = make_target(account_name="Chong Kun Dang")
        change_stage(lost.pk, Stage.LOST, actor_name="Kim")
        held = make_target(account_name="Yuhan")
        change_stage(held.pk, Stage.ON_HOLD, actor_name="Kim")

        result = create_supplier(**supplier_fields(supplier_name="Zhejiang Yongning"))

        assert result.affected_target_ids == []
        quoted.refresh_from_db()
        lost.refresh_from_db()
        held.refresh_from_db()
        assert quoted.current_stage == Stage.QUOTE_SENT
        assert lost.current_stage == Stage.LOST
        assert held.current_stage == Stage.ON_HOLD

    def test_other_products_are_untouched(self, make_target):
        other = make_target(product_name="Cefadroxil API")

        create_supplier(**supplier_fields())

        other.refresh_from_db()
        assert other.current_stage == Stage.MARKET_RESEARCH

    def test_replaying_the_trigger_changes_nothing(self, target, make_supplier):
        make_supplier()
        first = on_supplier_added("Cefaclor API")
        second = on_supplier_added("Cefaclor API")

        assert first.advanced is True
        assert second.advanced is False
        assert target.stage_history.count() == 2

    def test_trigger_without_suppliers_is_a_no_op(self, target):
        result = on_supplier_added("Cefaclor API")

        assert result.supplier_count == 0
        assert result.affected_target_ids == []


@pytest.mark.django_db
class TestSupplierRemoved:
    def test_last_supplier_removal_rolls_back(self, target):
        created = create_supplier(**supplier_fields())
        change_stage(target.pk, Stage.PRICE_AGREED, actor_name="Kim")

        result = delete_supplier(created.suppliers[0].pk, actor_name="Park Sora")

        target.refresh_from_db()
        assert target.current_stage == Stage.SOURCING_REQUEST
        assert target.stage_progress_rate == 5
        assert result.rolled_back is True
        assert result.remaining_suppliers == 0
        entry = target.stage_history.first()
        assert entry.from_stage == Stage.PRICE_AGREED
        assert entry.comment == "All suppliers removed: automatic rollback (PRICE_AGREED -> SOURCING_REQUEST)"

    def test_remaining_supplier_keeps_stage(self, target):
        first = create_supplier(**supplier_fields())
        create_supplier(**supplier_fields(supplier_name="Zhejiang Yongning"))
        change_stage(target.pk, Stage.TRIAL_PO, actor_name="Kim")

        result = delete_supplier(first.suppliers[0].pk)

        target.refresh_from_db()
        assert target.current_stage == Stage.TRIAL_PO
        assert result.rolled_back is False
        assert result.remaining_suppliers == 1

    def test_delete_by_name_removes_every_record(self, target):
        create_supplier(**supplier_fields())
        create_supplier(**supplier_fields(unit_price_foreign="8.1"))
        change_stage(target.pk, Stage.WON, actor_name="Kim")

        result = delete_suppliers_by_name("CEFACLOR api", "Qilu Antibiotics")

        assert result.deleted_count == 2
        assert count_suppliers("Cefaclor API") == 0
        target.refresh_from_db()
        assert target.current_stage == Stage.SOURCING_REQUEST

    def test_side_stages_are_not_rolled_back(self, make_target):
        created = create_supplier(**supplier_fields())
        lost = make_target()
        change_stage(lost.pk, Stage.LOST, actor_name="Kim")

        delete_supplier(created.suppliers[0].pk)

        lost.refresh_from_db()
        assert lost.current_stage == Stage.LOST

    def test_pre_sourcing_targets_stay_put(self, make_target, make_supplier):
        supplier = make_supplier()
        researching = make_target()

        delete_supplier(supplier.pk)

        researching.refresh_from_db()
        assert researching.current_stage == Stage.MARKET_RESEARCH
        assert researching.stage_history.count() == 1

    def test_replaying_the_trigger_changes_nothing(self, target, make_supplier):
        supplier = make_supplier()
        change_stage(target.pk, Stage.QUOTE_SENT, actor_name="Kim")
        Supplier.objects.filter(pk=supplier.pk).delete()

        first = on_supplier_removed("Cefaclor API")
        second = on_supplier_removed("Cefaclor API")

        assert first.rolled_back is True
        assert second.rolled_back is False
        assert target.stage_history.count() == 3
