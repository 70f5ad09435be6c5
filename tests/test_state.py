"""Tests for lucarne.state.AppState."""

import threading

from lucarne._types import ContentEntry
from lucarne.state import AppState


def _names(entries):
    return [e.name for e in entries]


class TestAppend:
    def test_sorted_by_name(self):
        state = AppState([ContentEntry(name="m")])
        state.append(ContentEntry(name="z"))
        snap = state.append(ContentEntry(name="a"))
        assert _names(snap.entries) == ["a", "m", "z"]
        assert snap.index == 0

    def test_returns_new_entry_index(self):
        state = AppState([ContentEntry(name="a"), ContentEntry(name="c")])
        snap = state.append(ContentEntry(name="b", path="/tmp/b.html"))
        assert snap.index == 1
        assert snap.entries[1].path == "/tmp/b.html"

    def test_selection_follows_selected_entry(self):
        state = AppState([ContentEntry(name="m", content="M")])
        state.append(ContentEntry(name="a", content="A"))
        # "m" moved to index 1 and stays selected
        assert state.current_index() == 1
        assert state.current_content() == "M"

    def test_duplicates_kept(self):
        state = AppState([ContentEntry(name="x")])
        state.append(ContentEntry(name="x", content="second"))
        assert len(state) == 2

    def test_duplicate_names_keep_insertion_order(self):
        state = AppState([ContentEntry(name="x", content="1")])
        snap = state.append(ContentEntry(name="x", content="2"))
        assert [e.content for e in snap.entries] == ["1", "2"]
        assert snap.index == 1

    def test_concurrent_appends(self):
        state = AppState([ContentEntry(name="initial")])
        barrier = threading.Barrier(8)

        def worker(n):
            barrier.wait()
            for i in range(25):
                state.append(ContentEntry(name=f"w{n}-{i:02d}", path=f"/tmp/{n}/{i}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        entries = state.all_entries()
        assert len(entries) == 1 + 8 * 25
        assert _names(entries) == sorted(_names(entries))
        assert len({e.path for e in entries}) == 1 + 8 * 25
        assert 0 <= state.current_index() < len(entries)


class TestReplaceOrAppend:
    def test_updates_existing_and_preserves_name(self):
        state = AppState([ContentEntry(name="a", path="/tmp/a.html", content="v1")])
        snap = state.replace_or_append("/tmp/a.html", "v2", "")
        assert len(snap.entries) == 1
        assert snap.entries[0].content == "v2"
        assert snap.entries[0].name == "a"

    def test_updates_name_when_given(self):
        state = AppState([ContentEntry(name="a", path="/tmp/a.html", content="v1")])
        snap = state.replace_or_append("/tmp/a.html", "v2", "renamed")
        assert snap.entries[0].name == "renamed"

    def test_selects_replaced_entry(self):
        state = AppState(
            [
                ContentEntry(name="a", path="/tmp/a.html"),
                ContentEntry(name="b", path="/tmp/b.html"),
            ]
        )
        snap = state.replace_or_append("/tmp/b.html", "new", "")
        assert snap.index == 1
        assert state.current_index() == 1
        assert state.current_content() == "new"

    def test_rename_resorts(self):
        state = AppState(
            [
                ContentEntry(name="a", path="/tmp/a.html"),
                ContentEntry(name="b", path="/tmp/b.html"),
            ]
        )
        snap = state.replace_or_append("/tmp/a.html", "x", "c")
        assert _names(snap.entries) == ["b", "c"]
        assert snap.index == 1
        assert state.current_content() == "x"

    def test_unknown_path_appends_like_append(self):
        initial = [ContentEntry(name="m", path="/tmp/m.html")]
        replaced = AppState(initial).replace_or_append("/tmp/a.html", "A", "a")
        appended = AppState(initial).append(
            ContentEntry(name="a", path="/tmp/a.html", content="A")
        )
        assert replaced.entries == appended.entries
        assert replaced.index == appended.index

    def test_unknown_path_selects_new_entry(self):
        state = AppState([ContentEntry(name="m", path="/tmp/m.html")])
        state.replace_or_append("/tmp/a.html", "A", "a")
        assert state.current_index() == 0
        assert state.current_content() == "A"

    def test_empty_path_never_matches(self):
        state = AppState([ContentEntry(name="stdin", path="", content="old")])
        snap = state.replace_or_append("", "new", "stdin")
        assert len(snap.entries) == 2


class TestReads:
    def test_all_entries_is_a_copy(self):
        state = AppState([ContentEntry(name="a")])
        entries = state.all_entries()
        entries.append(ContentEntry(name="b"))
        entries.clear()
        assert len(state) == 1

    def test_snapshot_is_detached(self):
        state = AppState([ContentEntry(name="a")])
        snap = state.append(ContentEntry(name="b"))
        state.append(ContentEntry(name="c"))
        assert len(snap.entries) == 2

    def test_empty_state(self):
        state = AppState()
        assert state.current_content() == ""
        assert state.current_entry() is None
        assert state.current_base_path() == ""

    def test_base_path(self):
        state = AppState([ContentEntry(name="a", path="/tmp/dir/a.html")])
        assert state.current_base_path() == "/tmp/dir"

    def test_base_path_for_stdin(self):
        assert AppState([ContentEntry(name="stdin")]).current_base_path() == ""

    def test_select(self):
        state = AppState([ContentEntry(name="a", content="A"), ContentEntry(name="b", content="B")])
        assert state.select(1) == "B"
        assert state.current_index() == 1

    def test_select_out_of_range(self):
        state = AppState([ContentEntry(name="a")])
        assert state.select(5) is None
        assert state.select(-1) is None
        assert state.current_index() == 0
