import random
from types import SimpleNamespace

from skillanchor.app.domain.hashing import (
    canonical_session_bytes,
    compute_session_hashes,
    hash_identifier,
    hash_session,
    to_hex,
)

KECCAK_EMPTY = "0xc5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"


def _session(**overrides):
    fields = dict(
        id="s1", task_id="t1", rater_id="r1", rated_user_id="u1", stars_avg=4.5, xp=120
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _line(skill_id, stars):
    return SimpleNamespace(skill_id=skill_id, stars=stars)


def test_hash_identifier_is_keccak256():
    assert to_hex(hash_identifier("")) == KECCAK_EMPTY
    digest = hash_identifier("t1")
    assert len(digest) == 32
    assert digest == hash_identifier("t1")
    assert digest != hash_identifier("t2")


def test_session_hash_ignores_skill_order():
    session = _session()
    forward = hash_session(session, [_line(2, 5), _line(1, 4)])
    backward = hash_session(session, [_line(1, 4), _line(2, 5)])
    assert forward == backward
    assert len(forward) == 32


def test_session_hash_stable_under_shuffles():
    session = _session(stars_avg=3.4, xp=210)
    lines = [_line(skill_id, (skill_id % 5) + 1) for skill_id in range(1, 13)]
    expected = hash_session(session, lines)
    rng = random.Random(7)
    for _ in range(50):
        shuffled = lines[:]
        rng.shuffle(shuffled)
        assert hash_session(session, shuffled) == expected


def test_canonical_bytes_use_fixed_field_order():
    payload = canonical_session_bytes(_session(), [_line(2, 5), _line(1, 4)])
    assert payload == (
        b'{"rating_id":"s1","task_id":"t1","rater_id":"r1","rated_user_id":"u1",'
        b'"stars_avg":4.5,"xp":120,'
        b'"skills":[{"skill_id":1,"stars":4},{"skill_id":2,"stars":5}]}'
    )


def test_whole_star_average_serialises_without_fraction():
    payload = canonical_session_bytes(_session(stars_avg=4.0), [_line(1, 4)])
    assert b'"stars_avg":4,' in payload
    assert hash_session(_session(stars_avg=4.0), [_line(1, 4)]) == hash_session(
        _session(stars_avg=4), [_line(1, 4)]
    )


def test_session_hash_changes_with_scores():
    lines = [_line(1, 4)]
    assert hash_session(_session(xp=120), lines) != hash_session(_session(xp=121), lines)
    assert hash_session(_session(), lines) != hash_session(_session(), [_line(1, 5)])


def test_compute_session_hashes_bundles_all_three():
    hashes = compute_session_hashes(_session(), [_line(1, 4)])
    assert hashes.task_hash == hash_identifier("t1")
    assert hashes.subject_hash == hash_identifier("u1")
    as_hex = hashes.as_hex()
    assert set(as_hex) == {"rating_session_hash", "task_id_hash", "subject_id_hash"}
    assert all(value.startswith("0x") and len(value) == 66 for value in as_hex.values())
