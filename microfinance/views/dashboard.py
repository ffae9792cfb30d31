"""
Dashboard View
==============

Role-based dashboard with portfolio statistics and quick actions
"""

from django.shortcuts import render
from django.contrib.auth.decorators import login_required
from django.utils import timezone

from microfinance.models import Member, Loan, MemberGroup, CommunicationLog
from microfinance.permissions import PermissionChecker
from microfinance.utils.reports import build_dashboard_stats, build_overdue_report


@login_required
def dashboard_view(request):
    """
    Main dashboard view - shows role-based statistics

    - Admin/Super Admin: System-wide stats
    - Branch Admin/Teller/Auditor: Branch-level stats
    - Loan Officer: Personal stats (assigned members and own loans)
    """
    checker = PermissionChecker(request.user)
    today = timezone.localdate()

    # =========================================================================
    # BASE QUERYSETS (FILTERED BY ROLE)
    # =========================================================================

    members = checker.filter_members(Member.objects.all())
    loans = checker.filter_loans(Loan.objects.all())
    groups = checker.filter_groups(MemberGroup.objects.all())

    stats = build_dashboard_stats(members, loans)
    overdue = build_overdue_report(loans, as_of=today)

    # =========================================================================
    # FOLLOW-UPS AND PENDING WORK
    # =========================================================================

    follow_ups = checker.filter_communication_logs(
        CommunicationLog.objects.filter(follow_up_date__isnull=False, follow_up_date__lte=today)
    ).select_related('member', 'loan', 'officer').order_by('follow_up_date')[:10]

    pending_approvals = []
    if checker.can_approve_loans():
        pending_approvals = loans.pending_approval().select_related('member', 'branch').order_by('created_at')[:5]

    context = {
        'page_title': 'Dashboard',
        'stats': stats,
        'overdue_totals': overdue['totals'],
        'overdue_by_risk': overdue['by_risk'],
        'top_overdue': overdue['rows'][:5],
        'member_stats': members.get_statistics(),
        'group_count': groups.count(),
        'follow_ups': follow_ups,
        'pending_approvals': pending_approvals,
        'checker': checker,
        'today': today,
    }

    return render(request, 'dashboard/index.html', context)
