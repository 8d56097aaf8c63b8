"""
Day Decision Workflow Tests
===========================

Full day runs against the in-memory diet service, a canned oracle answer and
a scripted console. One lunch slot offers A (currently selected), B and C;
the oracle recommends B unless a test says otherwise.
"""

import pytest
from datetime import date, timedelta

from conftest import (
    FakeDietClient,
    FakeOracle,
    MemoryPreferenceStore,
    ScriptedUI,
    make_diet,
    make_item,
    make_option,
    make_recommendation,
    run_async,
)

DAY = date(2025, 6, 10)


def _bundle():
    from menu_models import DayBundle
    return DayBundle(items=[make_item("/i/1", [
        make_option("a", name="A"), make_option("b", name="B"), make_option("c", name="C"),
    ], default="a")])


def _history_bundle():
    from menu_models import DayBundle
    return DayBundle(items=[make_item("/h/1", [make_option("a", name="A")], default="a")])


def _client(first_day=date(2025, 6, 1)):
    days = {DAY: _bundle()}
    for days_ago in range(1, 8):
        days[DAY - timedelta(days=days_ago)] = _history_bundle()
    return FakeDietClient(diets=[make_diet(1, first_day, date(2025, 6, 30))], days=days)


def _run(ui, store=None, client=None, recommendation=None):
    from day_workflow import DayWorkflow
    from menu_models import DietsList

    client = client or _client()
    store = store or MemoryPreferenceStore()
    oracle = FakeOracle(recommendation or make_recommendation({"/i/1": "b"}))
    workflow = DayWorkflow(client, oracle, store, ui, history_days=7)
    outcome = run_async(workflow.select_dishes_for_day(DAY, client.diets))
    return outcome, client, store, oracle


# =============================================================================
# Test: User Choices
# =============================================================================

class TestUserChoices:

    @pytest.mark.readonly
    def test_accept_recommendation_over_current(self):
        """Accepting B while A is selected: menu change only, no adjustment."""
        from menu_models import MenuChange

        ui = ScriptedUI(selections=[None], confirms=[True])

        outcome, client, store, _ = _run(ui)

        assert outcome.adjustments == []
        assert outcome.menu_changes == [MenuChange(dish_item_id="/i/1", dish_id="b")]
        assert outcome.menu_changes_saved is True
        assert client.submitted == [(1, DAY, [MenuChange("/i/1", "b")])]
        assert ("select", "Lunch", ["A", "B", "C"], 1) in ui.prompts
        assert store.next_day_to_check() == DAY + timedelta(days=1)

    @pytest.mark.readonly
    def test_override_to_third_option(self):
        """Choosing C over the recommended B: adjustment B->C and menu change to C."""
        from menu_models import MenuChange, UserAdjustment

        ui = ScriptedUI(selections=[2], texts=["too spicy"], confirms=[True, True])

        outcome, client, store, _ = _run(ui)

        expected = UserAdjustment(from_name="B", to_name="C", reason="too spicy", date=DAY)
        assert outcome.adjustments == [expected]
        assert store.adjustments() == [expected]
        assert outcome.adjustments_saved is True
        assert client.submitted == [(1, DAY, [MenuChange("/i/1", "c")])]
        assert ("text", "Why?") in ui.prompts

    @pytest.mark.readonly
    def test_revert_to_current_option(self):
        """Choosing A (already selected) over B: adjustment only, nothing submitted."""
        ui = ScriptedUI(selections=[0], texts=[""], confirms=[True])

        outcome, client, store, _ = _run(ui)

        assert [(a.from_name, a.to_name, a.reason) for a in outcome.adjustments] == [("B", "A", None)]
        assert outcome.menu_changes == []
        assert client.submitted == []
        assert [p for p in ui.prompts if p[0] == "confirm"] == [("confirm", "Add new preferences?")]

    @pytest.mark.readonly
    def test_declined_confirmations_still_advance(self):
        ui = ScriptedUI(selections=[2], texts=["meh"], confirms=[False, False])

        outcome, client, store, _ = _run(ui)

        assert outcome.adjustments_saved is False
        assert outcome.menu_changes_saved is False
        assert store.adjustments() == []
        assert client.submitted == []
        assert store.next_day_to_check() == DAY + timedelta(days=1)

    @pytest.mark.readonly
    def test_analysis_and_reasoning_are_shown(self):
        ui = ScriptedUI(selections=[None], confirms=[False])
        recommendation = make_recommendation(
            {"/i/1": "b"}, reasoning=["Fish twice this week"],
            analysis={"/i/1": {"a": "heavy", "b": "light"}},
        )

        _run(ui, recommendation=recommendation)

        assert (None, "Fish twice this week") in ui.ai
        assert ("A", "heavy") in ui.ai
        assert ("B", "light") in ui.ai
        assert (None, "b fits") in ui.ai


# =============================================================================
# Test: Context
# =============================================================================

class TestOracleContext:

    @pytest.mark.readonly
    def test_history_oldest_first(self):
        ui = ScriptedUI(confirms=[False])

        _, _, _, oracle = _run(ui)

        assert oracle.calls[0]["history"] == [
            "7 days ago", "6 days ago", "5 days ago", "4 days ago", "3 days ago", "2 days ago", "yesterday",
        ]

    @pytest.mark.readonly
    def test_history_skips_days_without_diet(self):
        ui = ScriptedUI(confirms=[False])

        _, client, _, oracle = _run(ui, client=_client(first_day=date(2025, 6, 7)))

        assert oracle.calls[0]["history"] == ["3 days ago", "2 days ago", "yesterday"]
        assert "No diet active for 2025-06-03" in ui.lines
        assert ("fetch_day", 1, date(2025, 6, 3)) not in client.calls

    @pytest.mark.readonly
    def test_stored_adjustments_are_sent(self):
        from menu_models import PreferencesSnapshot, UserAdjustment

        stored = [UserAdjustment("Soup", "Salad", "too heavy", date(2025, 6, 1))]
        store = MemoryPreferenceStore(PreferencesSnapshot(adjustments=stored))

        _, _, _, oracle = _run(ScriptedUI(confirms=[False]), store=store)

        assert oracle.calls[0]["adjustments"] == stored

    @pytest.mark.readonly
    def test_items_without_enabled_options_are_skipped(self):
        from menu_models import DayBundle

        client = _client()
        client.days[DAY] = DayBundle(items=[
            make_item("/i/1", [make_option("a", name="A"), make_option("b", name="B")], default="a"),
            make_item("/i/2", [make_option("z", enabled=False)], default="z", meal_type="Snack"),
        ])
        ui = ScriptedUI(confirms=[False])

        _, _, _, oracle = _run(ui, client=client)

        assert oracle.calls[0]["items"] == ["/i/1"]
        assert [p[1] for p in ui.prompts if p[0] == "select"] == ["Lunch"]


# =============================================================================
# Test: Failures
# =============================================================================

class TestFailures:

    @pytest.mark.readonly
    def test_missing_selection_aborts_day(self):
        from day_workflow import DayProcessingError
        from menu_models import DayBundle

        client = _client()
        client.days[DAY] = DayBundle(items=[
            make_item("/i/1", [make_option("a"), make_option("b")], default="a"),
            make_item("/i/2", [make_option("c"), make_option("d")], default="c", meal_type="Dinner"),
        ])
        store = MemoryPreferenceStore()

        with pytest.raises(DayProcessingError):
            _run(ScriptedUI(), store=store, client=client)

        assert store.next_day_to_check() is None
        assert client.submitted == []

    @pytest.mark.readonly
    def test_no_diet_for_day(self):
        from day_workflow import DayProcessingError

        client = _client(first_day=date(2025, 6, 11))
        store = MemoryPreferenceStore()

        with pytest.raises(DayProcessingError):
            _run(ScriptedUI(), store=store, client=client)

        assert store.next_day_to_check() is None

    @pytest.mark.readonly
    def test_oracle_failure_leaves_cursor(self):
        from day_workflow import DayWorkflow
        from menu_oracle import OracleError

        client = _client()
        store = MemoryPreferenceStore()
        workflow = DayWorkflow(client, FakeOracle(OracleError("boom")), store, ScriptedUI())

        with pytest.raises(OracleError):
            run_async(workflow.select_dishes_for_day(DAY, client.diets))

        assert store.next_day_to_check() is None


# =============================================================================
# Test: Decision Rules
# =============================================================================

class TestDecideDish:

    @pytest.mark.readonly
    def test_change_relative_to_current_selection(self):
        from day_workflow import decide_dish

        item = make_item("/i/1", [make_option("a"), make_option("b")], default="a")
        a, b = item.options

        adjustment, change = decide_dish(item, recommended=a, chosen=a, day=DAY)
        assert adjustment is None and change is None

        adjustment, change = decide_dish(item, recommended=a, chosen=b, day=DAY, reason="")
        assert adjustment.reason is None
        assert change.dish_id == "b"

    @pytest.mark.readonly
    def test_no_current_selection_always_changes(self):
        from day_workflow import decide_dish

        item = make_item("/i/1", [make_option("a")], default=None)

        adjustment, change = decide_dish(item, recommended=item.options[0], chosen=item.options[0], day=DAY)

        assert adjustment is None
        assert change.dish_id == "a"
