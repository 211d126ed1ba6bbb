"""Closed value sets shared by schemas and services."""

from enum import StrEnum


class Category(StrEnum):
    DAO = "dao"
    COMMUNITY = "community"
    PROJECT = "project"
    SOCIAL = "social"
    PROFESSIONAL = "professional"
    GAMING = "gaming"
    GENERAL = "general"


class Visibility(StrEnum):
    PUBLIC = "public"
    PRIVATE = "private"


class Role(StrEnum):
    ADMIN = "admin"
    MODERATOR = "moderator"
    MEMBER = "member"
    VIEWER = "viewer"


class Capability(StrEnum):
    """Permission bits stored as ``circle_role_permissions`` columns."""

    POST = "can_post"
    COMMENT = "can_comment"
    INVITE = "can_invite"
    MODERATE = "can_moderate"
    MANAGE_TREASURY = "can_manage_treasury"
    CREATE_PROPOSAL = "can_create_proposal"
    VOTE = "can_vote"
    MANAGE_ROLES = "can_manage_roles"


class RuleType(StrEnum):
    BADGE = "badge"
    NFT = "nft"
    FOLLOWER_COUNT = "follower_count"
    BADGE_POINTS = "badge_points"
    TOKEN_BALANCE = "token_balance"
    VERIFICATION = "verification"
    INVITE_ONLY = "invite_only"


class InteractionType(StrEnum):
    LIKE = "like"
    DISLIKE = "dislike"
    SHARE = "share"


class ActivityType(StrEnum):
    JOINED = "joined"
    LEFT = "left"
    POSTED = "posted"
    COMMENTED = "commented"
    REACTED = "reacted"
    SHARED = "shared"
    ROLE_CHANGED = "role_changed"
