"""
Tests for conflict resolution policies and write bookkeeping.
"""

import copy

from orchestration.conflict import Write, WeightedConflictResolver, last_writer_wins
from orchestration.run_context import REMOVED, RunContext, Workspace, diff, field_key, is_related


def _write(producer, value, key="[0].domain"):
    return Write(key, (0, "domain"), value, producer)


class TestLastWriterWins:
    def test_candidate_always_wins(self):
        existing = _write("domain", "segment.io")
        candidate = _write("badDomain", "someIncorrectDomain")
        assert last_writer_wins("[0].domain", existing, candidate, [], {}, {}) is candidate


class TestWeightedConflictResolver:
    WEIGHTS = {"[0].domain": {"domain": 0.9, "badDomain": 0.3}}

    def test_heavier_existing_is_kept(self):
        resolver = WeightedConflictResolver(self.WEIGHTS)
        existing = _write("domain", "segment.io")
        candidate = _write("badDomain", "someIncorrectDomain")
        assert resolver("[0].domain", existing, candidate, [], {}, {}) is existing

    def test_heavier_candidate_wins(self):
        resolver = WeightedConflictResolver(self.WEIGHTS)
        existing = _write("badDomain", "someIncorrectDomain")
        candidate = _write("domain", "segment.io")
        assert resolver("[0].domain", existing, candidate, [], {}, {}) is candidate

    def test_tie_favors_candidate(self):
        resolver = WeightedConflictResolver({"[0].domain": {"a": 0.5, "b": 0.5}})
        existing, candidate = _write("a", 1), _write("b", 2)
        assert resolver("[0].domain", existing, candidate, [], {}, {}) is candidate

    def test_unweighted_key_behaves_like_last_writer(self):
        resolver = WeightedConflictResolver(self.WEIGHTS)
        existing = _write("domain", "x", key="[0].title")
        candidate = _write("badDomain", "y", key="[0].title")
        assert resolver("[0].title", existing, candidate, [], {}, {}) is candidate

    def test_unknown_producer_counts_as_zero(self):
        resolver = WeightedConflictResolver(self.WEIGHTS)
        existing = _write("domain", "segment.io")
        candidate = _write("stranger", "elsewhere.io")
        assert resolver("[0].domain", existing, candidate, [], {}, {}) is existing


class TestProposals:
    def test_field_key_notation(self):
        assert field_key((0, "domain")) == "[0].domain"
        assert field_key((1, "lookups")) == "[1].lookups"
        assert field_key((0, "company", "crunchbase")) == "[0].company.crunchbase"

    def test_diff_walks_nested_dicts(self):
        before = {"email": "a@b.com", "company": {"name": "B"}}
        after = {"email": "a@b.com", "company": {"name": "B", "crunchbase": "url"}, "domain": "b.com"}
        assert sorted(diff(before, after, (0,))) == [
            ((0, "company", "crunchbase"), "url"),
            ((0, "domain"), "b.com"),
        ]

    def test_diff_reports_removed_keys(self):
        assert list(diff({"a": 1}, {}, (0,))) == [((0, "a"), REMOVED)]

    def test_workspace_isolates_working_copies(self):
        target = {"email": "a@b.com"}
        workspace = Workspace.capture(target, {})
        workspace.target["domain"] = "b.com"
        workspace.context["seen"] = True

        assert target == {"email": "a@b.com"}
        proposals = workspace.proposals("domain")
        assert {(w.key, w.value, w.producer) for w in proposals} == {
            ("[0].domain", "b.com", "domain"),
            ("[1].seen", True, "domain"),
        }

    def test_apply_creates_intermediate_dicts_and_removes(self):
        ctx = RunContext(target={"old": 1}, context={}, pending=[])
        ctx.apply(Write("[0].company.crunchbase", (0, "company", "crunchbase"), "url", "crunchbase"))
        ctx.apply(Write("[0].old", (0, "old"), REMOVED, "cleanup"))
        ctx.apply(Write("[1].lookups", (1, "lookups"), ["directory"], "directory"))

        assert ctx.target == {"company": {"crunchbase": "url"}}
        assert ctx.context == {"lookups": ["directory"]}

    def test_seed_attributes_input_fields(self):
        ctx = RunContext(target={"email": "a@b.com", "company": {"name": "B"}}, context={}, pending=[])
        ctx.seed()
        assert ctx.conflicts["[0].email"].current.producer == "init_person"
        assert ctx.conflicts["[0].company.name"].current.value == "B"

    def test_new_nested_dicts_are_reported_leaf_by_leaf(self):
        after = {"company": {"profile": {"name": "Segment"}, "crunchbase": "url"}}
        assert sorted(diff({}, after, (0,))) == [
            ((0, "company", "crunchbase"), "url"),
            ((0, "company", "profile", "name"), "Segment"),
        ]

    def test_diff_reports_scalar_replaced_by_dict_leaf_by_leaf(self):
        assert list(diff({"company": "Acme"}, {"company": {"name": "B"}}, (0,))) == [
            ((0, "company", "name"), "B"),
        ]

    def test_related_paths(self):
        assert is_related((0, "company"), (0, "company", "name"))
        assert is_related((0, "company", "name"), (0, "company"))
        assert not is_related((0, "company"), (0, "company"))
        assert not is_related((0, "company"), (1, "company", "name"))
        assert not is_related((0, "company"), (0, "companyName"))


class TestAssignmentJournal:
    def test_rewriting_a_field_with_its_value_is_proposed(self):
        workspace = Workspace.capture({"domain": "b.com", "company": {"name": "B"}}, {})
        workspace.target["domain"] = "b.com"
        workspace.target["company"]["name"] = "B"

        assert {w.key for w in workspace.proposals("domain")} == {"[0].domain", "[0].company.name"}

    def test_assigned_dict_is_proposed_leaf_by_leaf(self):
        workspace = Workspace.capture({"company": {"name": "B"}}, {})
        workspace.target["company"] = {"name": "B", "size": 3}

        assert sorted(w.key for w in workspace.proposals("p")) == ["[0].company.name", "[0].company.size"]

    def test_setdefault_on_existing_key_is_not_a_write(self):
        workspace = Workspace.capture({"company": {"name": "B"}}, {})
        workspace.target.setdefault("company", {})

        assert workspace.proposals("p") == []

    def test_cache_replays_propose_only_changes(self):
        workspace = Workspace.capture({"domain": "b.com"}, {})
        workspace.target.update({"domain": "b.com", "title": "CTO"})

        assert [w.key for w in workspace.proposals("cached", assignments=False)] == ["[0].title"]

    def test_working_copies_copy_out_as_plain_dicts(self):
        workspace = Workspace.capture({"company": {"name": "B"}}, {})
        snapshot = copy.deepcopy(workspace.target)

        assert type(snapshot) is dict
        assert type(snapshot["company"]) is dict
        assert type(copy.copy(workspace.target)) is dict
        assert workspace.journal == []
