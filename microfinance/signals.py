"""
Change Feed Signals
===================

Any save or delete of a tracked model bumps the ChangeFeed counter.
Open pages poll the counter and reload when it moves.
"""

import logging

from django.db.models.signals import post_save, post_delete

from microfinance.models import (
    Branch, MemberGroup, Member, Loan, LoanPayment, Expense, ChangeFeed,
)

logger = logging.getLogger(__name__)

TRACKED_MODELS = (Branch, MemberGroup, Member, Loan, LoanPayment, Expense)


def _bump(sender, **kwargs):
    if kwargs.get('raw'):
        return
    ChangeFeed.bump(sender._meta.label)
    logger.debug(f"Change feed bumped by {sender._meta.label}")


for _model in TRACKED_MODELS:
    post_save.connect(_bump, sender=_model, dispatch_uid=f'change_feed_save_{_model._meta.label_lower}')
    post_delete.connect(_bump, sender=_model, dispatch_uid=f'change_feed_delete_{_model._meta.label_lower}')
