from django.urls import path

from microfinance.views import (
    login_view,
    logout_view,
    profile_view,
    dashboard_view,
)

from microfinance.views.branch_views import (
    branch_list,
    branch_detail,
    branch_create,
    branch_update,
    branch_activate,
    branch_deactivate,
    branch_delete,
)

from microfinance.views.group_views import (
    group_list,
    group_detail,
    group_create,
    group_update,
    group_activate,
    group_deactivate,
    group_delete,
)

from microfinance.views.member_views import (
    member_list,
    member_detail,
    member_create,
    member_update,
    member_delete,
    member_reactivate,
    member_registration_fee,
    member_log_communication,
)

from microfinance.views.loan_views import (
    loan_list,
    loan_pending_approvals,
    loan_detail,
    loan_create,
    loan_update,
    loan_approve,
    loan_reject,
    loan_mark_defaulted,
    loan_write_off,
    loan_delete,
    member_loan_eligibility,
)

from microfinance.views.payment_views import (
    receive_payments,
    loan_record_payment,
    bulk_payment,
    payment_list,
)

from microfinance.views.expense_views import (
    expense_list,
    expense_stats,
    expense_detail,
    expense_create,
    expense_update,
    expense_toggle_status,
    expense_delete,
    expense_category_list,
    expense_category_create,
    expense_category_update,
    expense_budget_list,
    expense_budget_create,
    expense_budget_update,
)

from microfinance.views.report_views import (
    overdue_report,
    bad_debt_report,
    dormant_report,
    income_report,
    realizable_report,
    asset_create,
    asset_update,
    asset_delete,
    loan_officer_report,
    master_roll,
)

from microfinance.views.user_views import (
    user_list,
    user_detail,
    user_create,
    user_update,
    user_activate,
    user_deactivate,
    user_delete,
    user_permissions,
)

from microfinance.views.notification_views import (
    notification_list,
    notification_mark_read,
    notification_mark_all_read,
    change_feed_version,
)


app_name = "microfinance"

urlpatterns = [
    # =========================================================================
    # AUTHENTICATION
    # =========================================================================
    path('login/', login_view, name='login'),
    path('logout/', logout_view, name='logout'),
    path('profile/', profile_view, name='profile'),

    # =========================================================================
    # DASHBOARD
    # =========================================================================
    path('', dashboard_view, name='dashboard'),

    # =========================================================================
    # BRANCHES
    # =========================================================================
    path('branches/', branch_list, name='branch_list'),
    path('branches/create/', branch_create, name='branch_create'),
    path('branches/<uuid:branch_id>/', branch_detail, name='branch_detail'),
    path('branches/<uuid:branch_id>/edit/', branch_update, name='branch_update'),
    path('branches/<uuid:branch_id>/activate/', branch_activate, name='branch_activate'),
    path('branches/<uuid:branch_id>/deactivate/', branch_deactivate, name='branch_deactivate'),
    path('branches/<uuid:branch_id>/delete/', branch_delete, name='branch_delete'),

    # =========================================================================
    # GROUPS
    # =========================================================================
    path('groups/', group_list, name='group_list'),
    path('groups/create/', group_create, name='group_create'),
    path('groups/<uuid:group_id>/', group_detail, name='group_detail'),
    path('groups/<uuid:group_id>/edit/', group_update, name='group_update'),
    path('groups/<uuid:group_id>/activate/', group_activate, name='group_activate'),
    path('groups/<uuid:group_id>/deactivate/', group_deactivate, name='group_deactivate'),
    path('groups/<uuid:group_id>/delete/', group_delete, name='group_delete'),

    # =========================================================================
    # MEMBERS
    # =========================================================================
    path('members/', member_list, name='member_list'),
    path('members/create/', member_create, name='member_create'),
    path('members/<uuid:member_id>/', member_detail, name='member_detail'),
    path('members/<uuid:member_id>/edit/', member_update, name='member_update'),
    path('members/<uuid:member_id>/delete/', member_delete, name='member_delete'),
    path('members/<uuid:member_id>/reactivate/', member_reactivate, name='member_reactivate'),
    path('members/<uuid:member_id>/registration-fee/', member_registration_fee, name='member_registration_fee'),
    path('members/<uuid:member_id>/communications/', member_log_communication, name='member_log_communication'),
    path('members/<uuid:member_id>/loan-eligibility/', member_loan_eligibility, name='member_loan_eligibility'),

    # =========================================================================
    # LOANS
    # =========================================================================
    path('loans/', loan_list, name='loan_list'),
    path('loans/create/', loan_create, name='loan_create'),
    path('loans/pending/', loan_pending_approvals, name='loan_pending_approvals'),
    path('loans/<uuid:loan_id>/', loan_detail, name='loan_detail'),
    path('loans/<uuid:loan_id>/edit/', loan_update, name='loan_update'),
    path('loans/<uuid:loan_id>/approve/', loan_approve, name='loan_approve'),
    path('loans/<uuid:loan_id>/reject/', loan_reject, name='loan_reject'),
    path('loans/<uuid:loan_id>/default/', loan_mark_defaulted, name='loan_mark_defaulted'),
    path('loans/<uuid:loan_id>/write-off/', loan_write_off, name='loan_write_off'),
    path('loans/<uuid:loan_id>/delete/', loan_delete, name='loan_delete'),

    # =========================================================================
    # PAYMENTS
    # =========================================================================
    path('payments/', payment_list, name='payment_list'),
    path('payments/receive/', receive_payments, name='receive_payments'),
    path('payments/bulk/', bulk_payment, name='bulk_payment'),
    path('loans/<uuid:loan_id>/payments/record/', loan_record_payment, name='loan_record_payment'),

    # =========================================================================
    # EXPENSES
    # =========================================================================
    path('expenses/', expense_list, name='expense_list'),
    path('expenses/stats/', expense_stats, name='expense_stats'),
    path('expenses/create/', expense_create, name='expense_create'),
    path('expenses/<uuid:expense_id>/', expense_detail, name='expense_detail'),
    path('expenses/<uuid:expense_id>/edit/', expense_update, name='expense_update'),
    path('expenses/<uuid:expense_id>/toggle-status/', expense_toggle_status, name='expense_toggle_status'),
    path('expenses/<uuid:expense_id>/delete/', expense_delete, name='expense_delete'),

    # Categories and budgets
    path('expenses/categories/', expense_category_list, name='expense_category_list'),
    path('expenses/categories/create/', expense_category_create, name='expense_category_create'),
    path('expenses/categories/<uuid:category_id>/edit/', expense_category_update, name='expense_category_update'),
    path('expenses/budgets/', expense_budget_list, name='expense_budget_list'),
    path('expenses/budgets/create/', expense_budget_create, name='expense_budget_create'),
    path('expenses/budgets/<uuid:budget_id>/edit/', expense_budget_update, name='expense_budget_update'),

    # =========================================================================
    # REPORTS
    # =========================================================================
    path('reports/overdue/', overdue_report, name='overdue_report'),
    path('reports/bad-debt/', bad_debt_report, name='bad_debt_report'),
    path('reports/dormant/', dormant_report, name='dormant_report'),
    path('reports/income/', income_report, name='income_report'),
    path('reports/realizable/', realizable_report, name='realizable_report'),
    path('reports/realizable/assets/create/', asset_create, name='asset_create'),
    path('reports/realizable/assets/<uuid:asset_id>/edit/', asset_update, name='asset_update'),
    path('reports/realizable/assets/<uuid:asset_id>/delete/', asset_delete, name='asset_delete'),
    path('reports/loan-officers/', loan_officer_report, name='loan_officer_report'),
    path('reports/master-roll/', master_roll, name='master_roll'),

    # =========================================================================
    # STAFF
    # =========================================================================
    path('users/', user_list, name='user_list'),
    path('users/create/', user_create, name='user_create'),
    path('users/<uuid:user_id>/', user_detail, name='user_detail'),
    path('users/<uuid:user_id>/edit/', user_update, name='user_update'),
    path('users/<uuid:user_id>/activate/', user_activate, name='user_activate'),
    path('users/<uuid:user_id>/deactivate/', user_deactivate, name='user_deactivate'),
    path('users/<uuid:user_id>/delete/', user_delete, name='user_delete'),
    path('users/<uuid:user_id>/permissions/', user_permissions, name='user_permissions'),

    # =========================================================================
    # NOTIFICATIONS AND CHANGE FEED
    # =========================================================================
    path('notifications/', notification_list, name='notification_list'),
    path('notifications/<int:notification_id>/read/', notification_mark_read, name='notification_mark_read'),
    path('notifications/read-all/', notification_mark_all_read, name='notification_mark_all_read'),
    path('changes/version/', change_feed_version, name='change_feed_version'),
]
