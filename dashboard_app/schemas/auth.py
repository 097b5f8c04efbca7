from typing import Optional

from pydantic import BaseModel


class AuthContext(BaseModel):
    """Who is calling and what they may do."""
    user_role: str  # "admin" | "organization"
    organization_id: Optional[str] = None
    organization_name: Optional[str] = None
    is_admin: bool = False
    can_manage_content: bool = False
    can_manage_models: bool = False
    can_edit_model_info: bool = False


class DashboardPermissions(BaseModel):
    """Which dashboard areas and actions a role gets."""
    show_gallery_tab: bool
    show_stories_tab: bool
    show_tracking_tab: bool
    show_analytics_tab: bool
    show_settings_tab: bool
    can_upload_media: bool
    can_delete_media: bool
    can_create_model: bool
    can_delete_model: bool
    can_edit_basic_info: bool


class AuthInfo(BaseModel):
    context: AuthContext
    permissions: DashboardPermissions
