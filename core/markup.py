"""CSS markers of the X timeline markup."""

from __future__ import annotations

ITEM = 'article[data-testid="tweet"]'
TEXT_SEGMENT = '[data-testid="tweetText"]'

USER_BLOCK = '[data-testid="User-Name"]'
DISPLAY_NAME = 'div[dir="ltr"] span'
HANDLE = 'a[role="link"][tabindex="-1"] span'

AVATAR_IMAGE = '[data-testid^="UserAvatar-Container"] img'
TIME = "time"

SPAN = "span"
PROMOTED_LABEL = "Ad"
PLACEMENT_TRACKING = (
    '[data-testid*="placementTracking"], [data-testid*="impression"]'
)

REPLY, SHARE, LIKE = "reply", "retweet", "like"
NUMERIC_LABEL = "span span"
LINK = "a[href]"
ANALYTICS_PATH = "/analytics"


def action(test_id: str) -> str:
    return f'[data-testid="{test_id}"]'
