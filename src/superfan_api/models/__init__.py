"""SQLAlchemy models package."""

# Import all models
from .user import User, UserIdentity, UserRoleEnum  # noqa: F401
from .club import Club, StatusMultiplier  # noqa: F401
from .wallet import (  # noqa: F401
    PointTransaction,
    PointWallet,
    TransactionSourceEnum,
    TransactionTypeEnum,
)
from .reward import (  # noqa: F401
    RedemptionStateEnum,
    Reward,
    RewardKindEnum,
    RewardRedemption,
    RewardStatusEnum,
    SettleModeEnum,
)
from .tier_reward import (  # noqa: F401
    CampaignCreditBalance,
    CampaignItem,
    CreditPurchase,
    CreditRedemption,
    RewardClaim,
    TierReward,
)
from .payment_event import (  # noqa: F401
    PaymentProviderEnum,
    ProcessedChainTransaction,
    ProcessedPaymentEvent,
)
from .settlement import ClubSettlementPool, WeeklyUpfrontStat  # noqa: F401
from .tap_in import TapIn  # noqa: F401
