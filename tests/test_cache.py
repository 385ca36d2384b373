"""
Brief: Tests for splitdns.cache.AnswerCache expiry and ttl rewriting.

Inputs:
  - None

Outputs:
  - None
"""

import threading

from splitdns.answer import Answer
from splitdns.cache import AnswerCache, CachedEntry

KEY = "example.com.|1"


def _a(ttl, data="1.2.3.4", name="example.com."):
    return Answer(name=name, type=1, ttl=ttl, data=data)


def test_set_then_get_reports_full_ttl(clock):
    """
    Brief: An immediate get reports the stored ttl.

    Inputs:
      - answers with ttl=10

    Outputs:
      - None: Asserts found and ttl == 10
    """
    cache = AnswerCache(clock=clock)
    cache.set(KEY, [_a(10)])
    answers, found = cache.get(KEY)
    assert found is True
    assert [a.ttl for a in answers] == [10]
    assert answers[0].data == "1.2.3.4"


def test_ttl_counts_down_rounding_up(clock):
    """
    Brief: Remaining ttl is rounded up to whole seconds.

    Inputs:
      - ttl=10, clock advanced by 3.2s

    Outputs:
      - None: Asserts ttl == 7
    """
    cache = AnswerCache(clock=clock)
    cache.set(KEY, [_a(10)])
    clock.advance(3.2)
    answers, found = cache.get(KEY)
    assert found
    assert answers[0].ttl == 7


def test_expired_entry_is_evicted(clock):
    """
    Brief: After the ttl elapses the entry is reported missing and removed.

    Inputs:
      - ttl=10, clock advanced by 11s

    Outputs:
      - None: Asserts miss, removal, and a second miss without re-insertion
    """
    cache = AnswerCache(clock=clock)
    cache.set(KEY, [_a(10)])
    clock.advance(11)
    assert cache.get(KEY) == ([], False)
    assert len(cache) == 0
    assert cache.get(KEY) == ([], False)


def test_exact_expiry_boundary_is_expired(clock):
    """
    Brief: An entry with exactly 0 seconds remaining counts as expired.

    Inputs:
      - ttl=5, clock advanced by exactly 5s

    Outputs:
      - None: Asserts miss
    """
    cache = AnswerCache(clock=clock)
    cache.set(KEY, [_a(5)])
    clock.advance(5)
    _, found = cache.get(KEY)
    assert found is False


def test_stale_entries_stay_until_read(clock):
    """
    Brief: Eviction is lazy; expired entries remain stored until their key is read.

    Inputs:
      - two keys, both expired, only one read

    Outputs:
      - None: Asserts only the read key is removed
    """
    cache = AnswerCache(clock=clock)
    cache.set("a.|1", [_a(1, name="a.")])
    cache.set("b.|1", [_a(1, name="b.")])
    clock.advance(2)
    assert len(cache) == 2
    cache.get("a.|1")
    assert len(cache) == 1


def test_empty_answers_are_not_cached(clock):
    """
    Brief: set() with an empty list is a no-op.

    Inputs:
      - answers: []

    Outputs:
      - None: Asserts miss and empty store
    """
    cache = AnswerCache(clock=clock)
    cache.set(KEY, [])
    assert cache.get(KEY) == ([], False)
    assert len(cache) == 0


def test_min_ttl_applies_to_all_answers(clock):
    """
    Brief: The entry lives for the smallest ttl and every answer reports it.

    Inputs:
      - answers with ttl=5 and ttl=30

    Outputs:
      - None: Asserts both answers report 5 and expire together
    """
    cache = AnswerCache(clock=clock)
    cache.set(KEY, [_a(5, "1.1.1.1"), _a(30, "2.2.2.2")])
    answers, found = cache.get(KEY)
    assert found
    assert [a.ttl for a in answers] == [5, 5]
    assert [a.data for a in answers] == ["1.1.1.1", "2.2.2.2"]

    clock.advance(6)
    assert cache.get(KEY) == ([], False)


def test_get_does_not_mutate_stored_answers(clock):
    """
    Brief: Readers receive copies; the upstream's Answer objects keep their ttl.

    Inputs:
      - one answer with ttl=60, clock advanced 10s

    Outputs:
      - None: Asserts original ttl unchanged
    """
    original = _a(60)
    cache = AnswerCache(clock=clock)
    cache.set(KEY, [original])
    clock.advance(10)
    answers, _ = cache.get(KEY)
    assert answers[0].ttl == 50
    assert original.ttl == 60
    assert answers[0] is not original


def test_set_overwrites_existing_entry(clock):
    """
    Brief: A second set() for the same key replaces the first entry.

    Inputs:
      - two sets with different data and ttl

    Outputs:
      - None: Asserts latest data and ttl returned
    """
    cache = AnswerCache(clock=clock)
    cache.set(KEY, [_a(100, "1.1.1.1")])
    cache.set(KEY, [_a(20, "9.9.9.9")])
    answers, _ = cache.get(KEY)
    assert [(a.data, a.ttl) for a in answers] == [("9.9.9.9", 20)]
    assert len(cache) == 1


def test_zero_ttl_answers_are_immediately_stale(clock):
    cache = AnswerCache(clock=clock)
    cache.set(KEY, [_a(0)])
    assert cache.get(KEY) == ([], False)


def test_malformed_entry_is_evicted(clock):
    """
    Brief: A value that is not a CachedEntry is dropped and treated as a miss.

    Inputs:
      - raw garbage injected into the backing store

    Outputs:
      - None: Asserts miss and removal
    """
    cache = AnswerCache(clock=clock)
    cache._store[KEY] = ("not", "an", "entry")
    assert cache.get(KEY) == ([], False)
    assert KEY not in cache._store


def test_stored_entry_shape(clock):
    cache = AnswerCache(clock=clock)
    cache.set(KEY, [_a(30)])
    entry = cache._store[KEY]
    assert isinstance(entry, CachedEntry)
    assert entry.expires_at == clock.now + 30


def test_stats_counters(clock):
    """
    Brief: Counters track hits, misses and evictions; the snapshot reports live entries.

    Inputs:
      - one hit, one plain miss, one expiry

    Outputs:
      - None: Asserts stats values
    """
    cache = AnswerCache(clock=clock)
    cache.set(KEY, [_a(5)])
    cache.get(KEY)
    cache.get("missing.|1")
    clock.advance(10)
    cache.get(KEY)
    assert cache.stats() == {"entries": 0, "hits": 1, "misses": 2, "evictions": 1}

    cache.set(KEY, [_a(5)])
    assert cache.stats()["entries"] == 1


def test_concurrent_set_and_get():
    """
    Brief: Concurrent set/get from several threads does not raise.

    Inputs:
      - writer and reader threads on shared keys

    Outputs:
      - None: Asserts no errors and consistent final contents
    """
    cache = AnswerCache()
    errors = []

    def writer(n):
        try:
            for i in range(200):
                cache.set(f"k{i % 10}.|1", [_a(60, f"10.0.0.{n}")])
        except Exception as e:  # pragma: no cover - surfaced by assertion
            errors.append(e)

    def reader():
        try:
            for i in range(200):
                answers, found = cache.get(f"k{i % 10}.|1")
                if found:
                    assert answers and answers[0].ttl <= 60
        except Exception as e:  # pragma: no cover - surfaced by assertion
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    threads += [threading.Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(cache) == 10
