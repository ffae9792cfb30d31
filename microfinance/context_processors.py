from microfinance.models import ChangeFeed, Notification
from microfinance.permissions import PermissionChecker
from microfinance.utils.helpers import get_setting


def change_feed(request):
    """Version the page was rendered at, for the reload poller in base.html"""
    context = {
        'change_feed_version': ChangeFeed.current_version(),
        'change_feed_poll_seconds': get_setting('CHANGE_FEED_POLL_SECONDS'),
        'unread_notifications': 0,
        'granted': frozenset(),
    }
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        context['unread_notifications'] = Notification.objects.filter(recipient=user, is_read=False).count()
        context['granted'] = frozenset(PermissionChecker(user).get_permissions())
    return context
