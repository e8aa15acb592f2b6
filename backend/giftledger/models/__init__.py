from .auth import User, SessionToken
from .directory import Profile, Booking
from .credits import CreditTransaction
from .gifts import GiftType, Gift, GiftReply
from .fanposts import FanPost, FanPostUnlock
from .reviews import Review, ReviewInteraction, ReviewReply
from .notifications import Notification, ClientActivity

__all__ = [
    'User', 'SessionToken',
    'Profile', 'Booking',
    'CreditTransaction',
    'GiftType', 'Gift', 'GiftReply',
    'FanPost', 'FanPostUnlock',
    'Review', 'ReviewInteraction', 'ReviewReply',
    'Notification', 'ClientActivity',
]
