"""
Reviews of a vendor by the client of a completed contract, and the
aggregate profile rating derived from them.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from shared import dynamo, validation
from shared.auth import Caller
from shared.config import config
from shared.contracts import load_contract
from shared.errors import DuplicateReview, Forbidden, NotFound, ValidationError
from shared.filters import Eq, Exists, NotExists
from shared.logging import logger
from shared.models import REVIEW_ASPECTS, ContractStatus, review_id_for
from shared.utils import now_iso

_HALF = Decimal('2')


# =============================================================================
# Rating aggregation
# =============================================================================

def round_to_half(value: Decimal) -> Decimal:
    """Nearest 0.5, halves rounded up (4.25 -> 4.5)."""
    doubled = (Decimal(value) * _HALF).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    return doubled / _HALF


def mean_rating(ratings: Iterable[Any]) -> Optional[Decimal]:
    ratings = [Decimal(str(r)) for r in ratings]
    if not ratings:
        return None
    return sum(ratings) / len(ratings)


def public_reviews_for(user_id: str) -> List[Dict[str, Any]]:
    return dynamo.query(
        config.REVIEWS_TABLE, 'TargetIndex', 'targetUserId', user_id,
        filter_expression=Eq('isPublic', True),
    )


def _reviews_of(
    user_id: str,
    written: Optional[Dict[str, Any]] = None,
    removed_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Public reviews of a user as of the caller's own last write.

    TargetIndex is eventually consistent, so the review just written (or
    deleted) is merged over the query result by reviewId before the
    isPublic filter is applied.
    """
    found = {
        r['reviewId']: r
        for r in dynamo.query(config.REVIEWS_TABLE, 'TargetIndex', 'targetUserId', user_id)
    }
    if written is not None and written.get('targetUserId') == user_id:
        found[written['reviewId']] = written
    if removed_id is not None:
        found.pop(removed_id, None)
    return [r for r in found.values() if r.get('isPublic') is True]


def recompute_rating(
    user_id: str,
    written: Optional[Dict[str, Any]] = None,
    removed_id: Optional[str] = None,
) -> Optional[Decimal]:
    """
    Rewrite a user's profile rating from their public reviews.

    The field is removed, not zeroed, when no public reviews remain.
    Running it twice gives the same result.

    Returns:
        The stored rating, or None when the field was cleared
    """
    mean = mean_rating(r['rating'] for r in _reviews_of(user_id, written, removed_id))
    rating = round_to_half(mean) if mean is not None else None

    try:
        if rating is None:
            dynamo.update_item(
                config.PROFILES_TABLE, {'userId': user_id},
                remove=['rating'],
                condition=Exists('userId'),
            )
        else:
            dynamo.update_item(
                config.PROFILES_TABLE, {'userId': user_id},
                set_values={'rating': rating},
                condition=Exists('userId'),
            )
    except dynamo.ConditionFailed:
        logger.warning(f"No profile for user {user_id}, rating not stored")
        return rating

    logger.info(f"Profile rating for {user_id} -> {rating}")
    return rating


def after_review_change(
    user_id: str,
    written: Optional[Dict[str, Any]] = None,
    removed_id: Optional[str] = None,
) -> None:
    """
    Post-commit hook for review writes.

    Skipped when the Reviews table stream handler owns recomputation. A
    failure here is logged and never reaches the review request.
    """
    if not config.RATING_RECOMPUTE_INLINE:
        return
    try:
        recompute_rating(user_id, written, removed_id)
    except Exception as e:
        logger.exception(f"Rating recompute failed for {user_id}: {e}")


def review_stats(reviews: List[Dict[str, Any]]) -> Dict[str, Any]:
    ratings = [int(r['rating']) for r in reviews]
    mean = mean_rating(ratings)
    return {
        'totalReviews': len(ratings),
        'averageRating': mean if mean is not None else 0,
        'ratingDistribution': {str(star): ratings.count(star) for star in range(5, 0, -1)},
    }


# =============================================================================
# Review CRUD
# =============================================================================

def _aspects(value: Any) -> Dict[str, int]:
    if not isinstance(value, dict):
        raise ValidationError('aspects must be an object')
    unknown = set(value) - set(REVIEW_ASPECTS)
    if unknown:
        raise ValidationError(f"Unknown review aspects: {', '.join(sorted(unknown))}")
    return {name: validation.rating(score, name) for name, score in value.items() if score is not None}


def _parse_fields(body: dict) -> Dict[str, Any]:
    fields = {}
    if body.get('rating') is not None:
        fields['rating'] = validation.rating(body['rating'])
    if body.get('reviewText') is not None:
        fields['reviewText'] = validation.text(body['reviewText'], 'reviewText')
    if body.get('aspects') is not None:
        fields['aspects'] = _aspects(body['aspects'])
    if body.get('isPublic') is not None:
        fields['isPublic'] = validation.boolean(body['isPublic'], 'isPublic')
    return fields


def load_review(review_id: str) -> Dict[str, Any]:
    review = dynamo.get_item(config.REVIEWS_TABLE, {'reviewId': review_id})
    if not review:
        raise NotFound('Review not found')
    return review


def create_review(caller: Caller, body: dict) -> Dict[str, Any]:
    """
    The client of a completed contract reviews its vendor.

    Raises:
        DuplicateReview: the contract already has a review
    """
    validation.require_fields(body, 'contractId', 'rating')
    contract = load_contract(body['contractId'])
    if contract['clientId'] != caller.user_id:
        raise Forbidden('Only the client can review this contract')
    if contract['status'] != ContractStatus.COMPLETED:
        raise ValidationError('Can only review completed contracts')

    now = now_iso()
    review = {
        'reviewId': review_id_for(contract['contractId']),
        'contractId': contract['contractId'],
        'jobId': contract['jobId'],
        'reviewerId': caller.user_id,
        'targetUserId': contract['vendorId'],
        'isPublic': True,
        **_parse_fields(body),
        'createdAt': now,
        'updatedAt': now,
    }

    try:
        dynamo.put_item(config.REVIEWS_TABLE, review, condition=NotExists('reviewId'))
    except dynamo.ConditionFailed:
        raise DuplicateReview()

    logger.info(f"Review {review['reviewId']} created for {review['targetUserId']}")
    after_review_change(review['targetUserId'], written=review)
    return review


def list_user_reviews(user_id: str) -> Dict[str, Any]:
    """Public reviews of a user, newest first, with aggregate stats."""
    reviews = public_reviews_for(user_id)
    reviews.sort(key=lambda r: r.get('createdAt', ''), reverse=True)
    return {'reviews': reviews, 'stats': review_stats(reviews)}


def list_my_reviews(caller: Caller) -> List[Dict[str, Any]]:
    reviews = dynamo.query(config.REVIEWS_TABLE, 'ReviewerIndex', 'reviewerId', caller.user_id)
    reviews.sort(key=lambda r: r.get('createdAt', ''), reverse=True)
    return reviews


def get_review(caller: Optional[Caller], review_id: str) -> Dict[str, Any]:
    """Public reviews are readable by anyone; private ones only by their reviewer."""
    review = load_review(review_id)
    if review.get('isPublic') or (caller is not None and caller.user_id == review['reviewerId']):
        return review
    raise Forbidden()


def _load_own_review(caller: Caller, review_id: str) -> Dict[str, Any]:
    review = load_review(review_id)
    if review['reviewerId'] != caller.user_id:
        raise Forbidden()
    return review


def update_review(caller: Caller, review_id: str, body: dict) -> Dict[str, Any]:
    review = _load_own_review(caller, review_id)
    updates = _parse_fields(body)
    if not updates:
        raise ValidationError('No review fields to update')
    updates['updatedAt'] = now_iso()

    try:
        updated = dynamo.update_item(
            config.REVIEWS_TABLE, {'reviewId': review_id},
            set_values=updates,
            condition=Exists('reviewId'),
        )
    except dynamo.ConditionFailed:
        raise NotFound('Review not found')

    if 'rating' in updates or 'isPublic' in updates:
        after_review_change(review['targetUserId'], written=updated)
    return updated


def delete_review(caller: Caller, review_id: str) -> None:
    review = _load_own_review(caller, review_id)
    dynamo.delete_item(config.REVIEWS_TABLE, {'reviewId': review_id})
    logger.info(f"Review {review_id} deleted")
    after_review_change(review['targetUserId'], removed_id=review_id)
