from streampass.db.models.commerce import Rental, Subscription
from streampass.db.models.episode import Episode
from streampass.db.models.season import Season
from streampass.db.models.title import Title
from streampass.db.models.video_source import VideoSource

__all__ = ["Title", "Season", "Episode", "VideoSource", "Subscription", "Rental"]
