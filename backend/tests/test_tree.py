from __future__ import annotations

from datetime import datetime

from branchchat.tree import (
    ROOT_PARENT_KEY,
    build_message_tree,
    find_thread_root,
    get_active_path,
    get_parent_message,
    get_sibling_index,
    get_siblings,
    get_thread_messages,
    has_branches,
    list_threads,
    next_branch_index,
    normalize_parent_id,
)


def ids(messages):
    return [m.id for m in messages]


def test_normalize_parent_id():
    assert normalize_parent_id(None) == ROOT_PARENT_KEY
    assert normalize_parent_id(7) == 7


class TestBuildMessageTree:
    def test_groups_by_parent_and_skips_threads(self, make_message):
        u1 = make_message()
        a1 = make_message(u1.id, "assistant")
        t1 = make_message(a1.id, "user", thread=True)
        u2 = make_message(a1.id)

        tree = build_message_tree([u2, t1, a1, u1])

        assert ids(tree[ROOT_PARENT_KEY]) == [u1.id]
        assert ids(tree[u1.id]) == [a1.id]
        assert ids(tree[a1.id]) == [u2.id]

        with_threads = build_message_tree([u2, t1, a1, u1], include_thread_messages=True)
        assert ids(with_threads[a1.id]) == [t1.id, u2.id]

    def test_sorts_by_creation_with_id_tiebreak(self, make_message):
        same_time = datetime(2025, 1, 1)
        b = make_message(message_id=5, created_at=same_time)
        a = make_message(message_id=3, created_at=same_time)
        earlier = make_message(message_id=9, created_at=datetime(2024, 12, 31))

        tree = build_message_tree([b, a, earlier])

        assert ids(tree[ROOT_PARENT_KEY]) == [9, 3, 5]

    def test_is_deterministic(self, make_message):
        u1 = make_message()
        u2 = make_message()
        a1 = make_message(u1.id, "assistant")
        messages = [a1, u2, u1]

        first = build_message_tree(messages)
        second = build_message_tree(list(reversed(messages)))

        assert {k: ids(v) for k, v in first.items()} == {k: ids(v) for k, v in second.items()}


class TestActivePath:
    def test_empty(self):
        assert get_active_path([], {}) == []

    def test_defaults_to_first_branch(self, make_message):
        u1 = make_message()
        a1 = make_message(u1.id, "assistant")
        u1b = make_message()
        a1b = make_message(u1b.id, "assistant")

        assert ids(get_active_path([u1, a1, u1b, a1b], {})) == [u1.id, a1.id]

    def test_follows_selection(self, make_message):
        u1 = make_message()
        a1 = make_message(u1.id, "assistant")
        u1b = make_message()
        a1b = make_message(u1b.id, "assistant")

        path = get_active_path([u1, a1, u1b, a1b], {ROOT_PARENT_KEY: 1})

        assert ids(path) == [u1b.id, a1b.id]

    def test_clamps_stale_indices(self, make_message):
        u1 = make_message()
        a1 = make_message(u1.id, "assistant")
        messages = [u1, a1]

        assert ids(get_active_path(messages, {ROOT_PARENT_KEY: 4})) == [u1.id, a1.id]
        assert ids(get_active_path(messages, {ROOT_PARENT_KEY: -3, u1.id: 99})) == [u1.id, a1.id]

    def test_excludes_thread_replies(self, make_message):
        u1 = make_message()
        a1 = make_message(u1.id, "assistant")
        t1 = make_message(a1.id, "user", thread=True)

        assert ids(get_active_path([u1, a1, t1], {})) == [u1.id, a1.id]

    def test_has_no_repeats_and_is_stable_when_a_leaf_is_added(self, make_message):
        u1 = make_message()
        a1 = make_message(u1.id, "assistant")
        u2 = make_message(a1.id)
        a2 = make_message(u2.id, "assistant")
        u2b = make_message(a1.id)
        messages = [u1, a1, u2, a2, u2b]

        before = ids(get_active_path(messages, {}))
        assert len(before) == len(set(before))

        leaf = make_message(a2.id)
        after = ids(get_active_path(messages + [leaf], {}))

        assert after[: len(before)] == before
        assert after[-1] == leaf.id


class TestThreadMessages:
    def test_unknown_root(self, make_message):
        assert get_thread_messages([make_message()], 42, {}) == []

    def test_root_then_thread_replies_only(self, make_message):
        u1 = make_message()
        a1 = make_message(u1.id, "assistant")
        t1 = make_message(a1.id, "user", thread=True)
        t2 = make_message(t1.id, "assistant", thread=True)
        u2 = make_message(a1.id)
        a2 = make_message(u2.id, "assistant")

        path = get_thread_messages([u1, a1, t1, t2, u2, a2], a1.id, {})

        assert ids(path) == [a1.id, t1.id, t2.id]
        assert all(m.is_thread_message for m in path[1:])

    def test_root_without_replies(self, make_message):
        u1 = make_message()
        a1 = make_message(u1.id, "assistant")
        u2 = make_message(a1.id)

        assert ids(get_thread_messages([u1, a1, u2], a1.id, {})) == [a1.id]

    def test_selects_thread_branch(self, make_message):
        u1 = make_message()
        a1 = make_message(u1.id, "assistant")
        t1 = make_message(a1.id, "user", thread=True)
        t1b = make_message(a1.id, "user", thread=True)
        t2b = make_message(t1b.id, "assistant", thread=True)
        messages = [u1, a1, t1, t1b, t2b]

        assert ids(get_thread_messages(messages, a1.id, {a1.id: 1})) == [a1.id, t1b.id, t2b.id]
        assert ids(get_thread_messages(messages, a1.id, {a1.id: 10})) == [a1.id, t1b.id, t2b.id]


class TestSiblings:
    def test_contains_message_and_index_points_at_it(self, make_message):
        u1 = make_message()
        a1 = make_message(u1.id, "assistant")
        u1b = make_message()
        u1c = make_message()
        messages = [u1, a1, u1b, u1c]

        for message in (u1, u1b, u1c, a1):
            siblings = get_siblings(messages, message)
            index = get_sibling_index(messages, message)
            assert message.id in ids(siblings)
            assert siblings[index].id == message.id

        assert ids(get_siblings(messages, u1b)) == [u1.id, u1b.id, u1c.id]
        assert has_branches(messages, u1)
        assert not has_branches(messages, a1)

    def test_thread_flag_separates_groups(self, make_message):
        u1 = make_message()
        a1 = make_message(u1.id, "assistant")
        u2 = make_message(a1.id)
        t1 = make_message(a1.id, "user", thread=True)
        messages = [u1, a1, u2, t1]

        assert ids(get_siblings(messages, u2)) == [u2.id]
        assert ids(get_siblings(messages, t1)) == [t1.id]

    def test_next_branch_index_is_group_size(self, make_message):
        u1 = make_message()
        a1 = make_message(u1.id, "assistant")
        u1b = make_message()
        t1 = make_message(a1.id, "user", thread=True)
        messages = [u1, a1, u1b, t1]

        assert next_branch_index(messages, None) == 2
        assert next_branch_index(messages, u1.id) == 1
        assert next_branch_index(messages, a1.id) == 0
        assert next_branch_index(messages, a1.id, is_thread_message=True) == 1

    def test_parent_lookup(self, make_message):
        u1 = make_message()
        a1 = make_message(u1.id, "assistant")

        assert get_parent_message([u1, a1], a1) is u1
        assert get_parent_message([u1, a1], u1) is None


def test_list_threads_counts_nested_replies(make_message):
    u1 = make_message()
    a1 = make_message(u1.id, "assistant")
    t1 = make_message(a1.id, "user", thread=True)
    t2 = make_message(t1.id, "assistant", thread=True)
    u2 = make_message(a1.id)
    a2 = make_message(u2.id, "assistant")
    t3 = make_message(a2.id, "user", thread=True)

    threads = list_threads([u1, a1, t1, t2, u2, a2, t3])

    assert [(root.id, count) for root, count in threads] == [(a1.id, 2), (a2.id, 1)]


def test_find_thread_root(make_message):
    u1 = make_message()
    a1 = make_message(u1.id, "assistant")
    t1 = make_message(a1.id, "user", thread=True)
    t2 = make_message(t1.id, "assistant", thread=True)
    orphan = make_message(99, "user", thread=True)
    messages = [u1, a1, t1, t2, orphan]

    assert find_thread_root(messages, t2) is a1
    assert find_thread_root(messages, a1) is a1
    assert find_thread_root(messages, orphan) is None
