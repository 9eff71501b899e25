# mypy: ignore-errors
# tests/services/test_scores.py
"""Tests for on-read score aggregation."""

from protocol_forum.services import votes as vote_store
from protocol_forum.services.scores import VoteScore, score_for, scores_for


def test_target_without_votes_scores_zero(db_session, thread) -> None:
    """No votes means zero counts, not None."""
    assert score_for(db_session, "thread", thread.id) == VoteScore(0, 0, 0)


def test_counts_match_cast_votes(db_session, make_user, comment) -> None:
    """N upvotes and M downvotes aggregate to {N, M, N-M}."""
    voters = [make_user(f"Voter {i}") for i in range(5)]
    for voter in voters[:3]:
        vote_store.cast_vote(db_session, voter.id, "comment", comment.id, "upvote")
    for voter in voters[3:]:
        vote_store.cast_vote(db_session, voter.id, "comment", comment.id, "downvote")

    score = score_for(db_session, "comment", comment.id)
    assert score.as_dict() == {"upvotes": 3, "downvotes": 2, "score": 1}


def test_score_ignores_other_types_with_same_id(db_session, test_user, thread, review) -> None:
    """Votes on a review never leak into a thread's score."""
    vote_store.cast_vote(db_session, test_user.id, "review", review.id, "upvote")

    assert score_for(db_session, "thread", thread.id).upvotes == 0
    assert score_for(db_session, "review", review.id).upvotes == 1


def test_scores_for_batches_and_fills_missing(db_session, test_user, other_user, protocol) -> None:
    """Batch scoring returns an entry for every id, voted on or not."""
    from protocol_forum.models import Thread

    threads = [
        Thread(protocol_id=protocol.id, author_id=test_user.id, title=f"T{i}", body="...")
        for i in range(3)
    ]
    db_session.add_all(threads)
    db_session.commit()

    vote_store.cast_vote(db_session, test_user.id, "thread", threads[0].id, "upvote")
    vote_store.cast_vote(db_session, other_user.id, "thread", threads[0].id, "upvote")
    vote_store.cast_vote(db_session, test_user.id, "thread", threads[1].id, "downvote")

    scores = scores_for(db_session, "thread", [t.id for t in threads])

    assert scores[threads[0].id] == VoteScore(2, 0, 2)
    assert scores[threads[1].id] == VoteScore(0, 1, -1)
    assert scores[threads[2].id] == VoteScore(0, 0, 0)


def test_scores_for_empty_input(db_session) -> None:
    assert scores_for(db_session, "reply", []) == {}
