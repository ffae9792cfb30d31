"""
Notification Views
==================

In-app notifications and the change-feed endpoint polled by every page
"""

import logging

from django.shortcuts import render, redirect, get_object_or_404
from django.contrib.auth.decorators import login_required
from django.contrib import messages
from django.core.paginator import Paginator
from django.http import JsonResponse
from django.views.decorators.http import require_POST, require_GET

from microfinance.models import Notification, ChangeFeed
from microfinance.utils.helpers import get_setting

logger = logging.getLogger(__name__)


@login_required
def notification_list(request):
    notifications = Notification.objects.filter(recipient=request.user).select_related('loan')

    show = request.GET.get('show', 'all')
    if show == 'unread':
        notifications = notifications.filter(is_read=False)

    paginator = Paginator(notifications, get_setting('PAGE_SIZE'))
    page_obj = paginator.get_page(request.GET.get('page'))

    context = {
        'page_title': 'Notifications',
        'page_obj': page_obj,
        'show': show,
    }
    return render(request, 'notifications/list.html', context)


@login_required
@require_POST
def notification_mark_read(request, notification_id):
    notification = get_object_or_404(Notification, id=notification_id, recipient=request.user)
    if not notification.is_read:
        notification.is_read = True
        notification.save(update_fields=['is_read'])

    if notification.loan_id:
        return redirect('microfinance:loan_detail', loan_id=notification.loan_id)
    return redirect('microfinance:notification_list')


@login_required
@require_POST
def notification_mark_all_read(request):
    count = Notification.objects.filter(recipient=request.user, is_read=False).update(is_read=True)
    logger.debug(f"{request.user.email} marked {count} notifications as read")
    messages.success(request, f'{count} notification(s) marked as read.')
    return redirect('microfinance:notification_list')


@login_required
@require_GET
def change_feed_version(request):
    """
    Current change-feed version; the page reloads itself when this differs
    from the version it was rendered with
    """
    unread = Notification.objects.filter(recipient=request.user, is_read=False).count()
    return JsonResponse({
        'version': ChangeFeed.current_version(),
        'unread_notifications': unread,
    })
