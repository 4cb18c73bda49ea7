from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field


UserRole = Literal["user", "technician", "admin"]

BookingStatus = Literal["PENDING", "CONFIRMED", "IN_PROGRESS", "COMPLETED", "CANCELLED", "NO_SHOW"]

ServiceType = Literal["REPAIR", "INSTALLATION", "MAINTENANCE", "INSPECTION", "CONSULTATION", "EMERGENCY"]

LeaderboardPeriod = Literal["WEEKLY", "MONTHLY", "ALL_TIME"]


class User(BaseModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: UserRole = "user"
    photo_url: Optional[str] = None
    email_verified: bool = False
    referred_by: Optional[str] = None
    created_at: str


class UserRegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    phone: Optional[str] = None
    account_type: Literal["user", "technician"] = "user"
    specializations: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    company_name: Optional[str] = None
    photo_base64: Optional[str] = None
    referred_by: Optional[str] = None


class AuthLoginRequest(BaseModel):
    email: str
    password: str


class AuthLoginResponse(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    user: User
    expires_at: str


class AuthMeResponse(BaseModel):
    user: User


class EmailRequest(BaseModel):
    email: str


class VerificationStatus(BaseModel):
    email_verified: bool


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


class ResetTokenStatus(BaseModel):
    valid: bool


class MessageResponse(BaseModel):
    message: str


class UserUpdateRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    photo_url: Optional[str] = None
    changed_by: Optional[str] = None


class ProfileChange(BaseModel):
    id: str
    user_id: str
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_by: str
    ip_address: str
    created_at: str


class PhotoUploadRequest(BaseModel):
    photo_base64: Optional[str] = None


class PhotoUploadResponse(BaseModel):
    message: str
    photo_url: Optional[str] = None


class RoleUpdateRequest(BaseModel):
    role: str


class Review(BaseModel):
    id: str
    technician_id: str
    author_id: str
    author_name: Optional[str] = None
    booking_id: Optional[str] = None
    rating: int = Field(ge=1, le=5)
    comment: str = ""
    created_at: str


class ReviewCreateRequest(BaseModel):
    author_id: str
    rating: int = Field(ge=1, le=5)
    comment: str = ""


class Technician(BaseModel):
    id: str
    user_id: str
    name: str
    email: str = ""
    phone: Optional[str] = None
    photo_url: Optional[str] = None
    specialization: str = ""
    specializations: list[str] = Field(default_factory=list)
    location: str
    company_name: Optional[str] = None
    rating: float = 0.0
    total_reviews: int = 0
    total_jobs_completed: int = 0
    verified: bool = False
    reviews: list[Review] = Field(default_factory=list)


class TechnicianRegisterRequest(BaseModel):
    user_id: str
    specializations: Union[list[str], str]
    location: str
    phone: Optional[str] = None
    company_name: Optional[str] = None


class BookingCreateRequest(BaseModel):
    customer_id: str
    technician_id: str
    scheduled_date: str
    scheduled_time: str
    service_type: ServiceType
    description: str = ""
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    estimated_duration: int = Field(default=60, gt=0)


class ServiceTypeInfo(BaseModel):
    code: ServiceType
    name: str
    name_es: str


class Booking(BaseModel):
    id: str
    customer_id: str
    customer_name: Optional[str] = None
    technician_id: str
    technician_user_id: Optional[str] = None
    technician_name: Optional[str] = None
    scheduled_date: str
    scheduled_time: str
    service_type: ServiceType
    description: str = ""
    address: str
    city: str
    phone: str
    estimated_duration: int = 60
    status: BookingStatus
    total_price: Optional[float] = None
    cancelled_by: Optional[str] = None
    cancel_reason: Optional[str] = None
    confirmed_at: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: str


class BookingList(BaseModel):
    bookings: list[Booking]
    total: int


class TechnicianActionRequest(BaseModel):
    technician_user_id: str


class BookingCompleteRequest(BaseModel):
    technician_user_id: str
    total_price: Optional[float] = Field(default=None, ge=0)


class BookingCancelRequest(BaseModel):
    cancelled_by: Literal["customer", "technician", "admin"]
    canceller_user_id: str
    reason: Optional[str] = None


class BookingStatusChange(BaseModel):
    id: str
    booking_id: str
    actor_user_id: str
    from_status: str
    to_status: str
    note: str = ""
    created_at: str


class AvailabilitySlotInput(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    is_available: bool = True


class AvailabilitySlot(BaseModel):
    id: str
    technician_id: str
    day_of_week: int
    start_time: str
    end_time: str
    is_recurring: bool = True
    is_available: bool = True


class AvailabilitySetRequest(BaseModel):
    technician_id: str
    slots: list[AvailabilitySlotInput]


class TimeOffCreateRequest(BaseModel):
    technician_id: str
    start_date: str
    end_date: str
    reason: Optional[str] = None


class TimeOff(BaseModel):
    id: str
    technician_id: str
    start_date: str
    end_date: str
    reason: Optional[str] = None
    created_at: str


class PointsSummary(BaseModel):
    total_points: int
    lifetime_points: int
    current_level: int
    level_name: str
    level_name_es: str
    level_progress: int
    points_to_next_level: int
    next_level_name: Optional[str] = None
    next_level_name_es: Optional[str] = None


class PointTransaction(BaseModel):
    id: str
    user_id: str
    points: int
    type: Literal["EARNED", "BONUS", "REDEEMED", "ADJUSTMENT"]
    source: str
    source_id: Optional[str] = None
    description: str
    created_at: str


class PointsHistory(BaseModel):
    transactions: list[PointTransaction]
    total: int
    has_more: bool


class AwardPointsRequest(BaseModel):
    user_id: str
    points: int
    type: Literal["EARNED", "BONUS", "REDEEMED", "ADJUSTMENT"]
    source: str
    description: str
    source_id: Optional[str] = None


class AwardPointsResult(BaseModel):
    points_awarded: int
    new_total: int
    level_up: bool
    new_level: Optional[int] = None
    new_level_name: Optional[str] = None


class Level(BaseModel):
    level_number: int
    name: str
    name_es: str
    min_points: int
    max_points: int
    perks: Dict[str, Any] = Field(default_factory=dict)


class Achievement(BaseModel):
    code: str
    name: str
    name_es: str
    description: str
    description_es: str
    category: Literal["MILESTONE", "QUALITY", "ENGAGEMENT", "SPECIAL"]
    points_reward: int
    badge_color: str
    sort_order: int


class UserAchievement(Achievement):
    is_unlocked: bool = False
    unlocked_at: Optional[str] = None


class AchievementCheckRequest(BaseModel):
    user_id: str
    trigger_event: Optional[str] = None


class AchievementCheckResult(BaseModel):
    new_achievements: list[Achievement]


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    user_name: str
    points: int
    level: int
    jobs_completed: int = 0
    average_rating: float = 0.0
    role: str = "user"


class Reward(BaseModel):
    id: str
    code: str
    name: str
    name_es: str
    description: str
    description_es: str
    points_cost: int
    category: Literal["DISCOUNT", "FEATURE"]
    value: Dict[str, Any] = Field(default_factory=dict)
    stock: Optional[int] = None
    is_active: bool = True


class AffordableRewards(BaseModel):
    user_points: int
    rewards: list[Reward]


class RewardRedeemRequest(BaseModel):
    user_id: str
    reward_code: str


class RewardRedemption(BaseModel):
    id: str
    user_id: str
    reward_id: str
    reward_code: str
    reward_name_es: Optional[str] = None
    points_used: int
    code: str
    status: Literal["ACTIVE", "USED", "EXPIRED"] = "ACTIVE"
    redeemed_at: str
    expires_at: str


class RewardRedeemResponse(BaseModel):
    message: str
    redemption_code: str
    reward_name: str
    reward_description: str
    redemption: RewardRedemption


class GamificationInitRequest(BaseModel):
    user_id: str


class RoleCount(BaseModel):
    role: str
    count: int


class StatusCount(BaseModel):
    status: str
    count: int


class TopTechnician(BaseModel):
    technician_id: str
    name: str
    jobs: int
    rating: float


class AdminStats(BaseModel):
    total_users: int
    total_technicians: int
    total_bookings: int
    completed_bookings: int
    pending_bookings: int
    total_revenue: float
    completion_rate: float
    average_rating: float
    users_by_role: list[RoleCount]
    bookings_by_status: list[StatusCount]
    top_technicians: list[TopTechnician]
    recent_activity: list[BookingStatusChange]


class AppSettings(BaseModel):
    specializations: list[str]
    locations: list[str]


class SpecializationsUpdateRequest(BaseModel):
    specializations: list[str]


class LocationsUpdateRequest(BaseModel):
    locations: list[str]


class SpecializationRequest(BaseModel):
    specialization: str


class LocationRequest(BaseModel):
    location: str


class DeviceTokenRegisterRequest(BaseModel):
    user_id: str
    device_token: str
    platform: Literal["android", "ios", "web"] = "web"


class NotificationRecord(BaseModel):
    id: str
    user_id: str
    title: str
    body: str
    category: Literal["booking", "gamification", "account", "system"] = "system"
    read: bool = False
    created_at: str
    deep_link: Optional[str] = None
