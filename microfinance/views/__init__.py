from .auth_views import (
    login_view,
    logout_view,
    profile_view,
)

from .dashboard import (
    dashboard_view,
)

from .branch_views import (
    branch_list,
    branch_detail,
    branch_create,
    branch_update,
    branch_activate,
    branch_deactivate,
    branch_delete,
)

from .group_views import (
    group_list,
    group_detail,
    group_create,
    group_update,
    group_activate,
    group_deactivate,
    group_delete,
)


__all__ = [
    "login_view",
    "logout_view",
    "profile_view",
    "dashboard_view",
    # Branch Views
    "branch_list",
    "branch_detail",
    "branch_create",
    "branch_update",
    "branch_activate",
    "branch_deactivate",
    "branch_delete",
    # Group Views
    "group_list",
    "group_detail",
    "group_create",
    "group_update",
    "group_activate",
    "group_deactivate",
    "group_delete",
]
