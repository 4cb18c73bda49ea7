from typing import Optional

from fastapi import APIRouter, Header, Query

from tecnicos.auth import assert_actor_authorized, assert_admin
from tecnicos.models import (
    Achievement,
    AchievementCheckRequest,
    AchievementCheckResult,
    AffordableRewards,
    AwardPointsRequest,
    AwardPointsResult,
    GamificationInitRequest,
    LeaderboardEntry,
    Level,
    PointsHistory,
    PointsSummary,
    Reward,
    RewardRedeemRequest,
    RewardRedeemResponse,
    RewardRedemption,
    UserAchievement,
)
from tecnicos.services.errors import StoreError, raise_store_http_error
from tecnicos.services.gamification_store import gamification_store

router = APIRouter(prefix="/gamification", tags=["gamification"])


@router.get("/points/{user_id}", response_model=PointsSummary)
def points_summary(user_id: str):
    try:
        return gamification_store.get_points_summary(user_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/points/{user_id}/history", response_model=PointsHistory)
def points_history(
    user_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
):
    return gamification_store.get_points_history(user_id, limit=limit, offset=offset)


@router.post("/points/award", response_model=AwardPointsResult)
def award_points(payload: AwardPointsRequest, authorization: Optional[str] = Header(default=None)):
    assert_admin(authorization=authorization)
    try:
        result = gamification_store.award_points(
            payload.user_id,
            payload.points,
            payload.type,
            payload.source,
            payload.description,
            payload.source_id,
        )
    except StoreError as exc:
        raise_store_http_error(exc)
    gamification_store.check_and_unlock_achievements(payload.user_id)
    return result


@router.get("/achievements", response_model=list[Achievement])
def list_achievements():
    return gamification_store.list_achievements()


@router.get("/achievements/{user_id}", response_model=list[UserAchievement])
def user_achievements(user_id: str):
    return gamification_store.get_user_achievements(user_id)


@router.post("/achievements/check", response_model=AchievementCheckResult)
def check_achievements(payload: AchievementCheckRequest):
    try:
        unlocked = gamification_store.check_and_unlock_achievements(payload.user_id)
    except StoreError as exc:
        raise_store_http_error(exc)
    return AchievementCheckResult(new_achievements=unlocked)


@router.get("/levels", response_model=list[Level])
def list_levels():
    return gamification_store.list_levels()


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
def leaderboard(
    period: str = Query(default="ALL_TIME"),
    limit: int = Query(default=10, ge=1, le=100),
):
    return gamification_store.get_leaderboard(period=period.upper(), limit=limit)


@router.get("/rewards", response_model=list[Reward])
def list_rewards():
    return gamification_store.get_available_rewards()


@router.get("/rewards/{user_id}/available", response_model=AffordableRewards)
def affordable_rewards(user_id: str):
    try:
        return gamification_store.get_affordable_rewards(user_id)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.post("/rewards/redeem", response_model=RewardRedeemResponse)
def redeem_reward(payload: RewardRedeemRequest, authorization: Optional[str] = Header(default=None)):
    assert_actor_authorized(actor_user_id=payload.user_id, authorization=authorization)
    try:
        return gamification_store.redeem_reward(payload.user_id, payload.reward_code)
    except StoreError as exc:
        raise_store_http_error(exc)


@router.get("/rewards/{user_id}/history", response_model=list[RewardRedemption])
def redemption_history(user_id: str):
    return gamification_store.get_user_redemptions(user_id)


@router.post("/initialize", response_model=PointsSummary)
def initialize(payload: GamificationInitRequest):
    try:
        return gamification_store.initialize_user_points(payload.user_id)
    except StoreError as exc:
        raise_store_http_error(exc)
