# tools/user_tools.py
from typing import Dict
from supabase import acreate_client, AsyncClient
from supabase.lib.client_options import AsyncClientOptions
from config.config import SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY
from models.user_data import CreateUserRequest, UserProfile
from utils.errors import PersistenceError, ProvisioningError
from utils.logging_setup import setup_logging

logger = setup_logging()


async def get_admin_client() -> AsyncClient:
    if not all([SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY]):
        logger.error("SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY not configured")
        raise ProvisioningError("Configuração Supabase incompleta", status_code=500)
    return await acreate_client(
        SUPABASE_URL,
        SUPABASE_SERVICE_ROLE_KEY,
        options=AsyncClientOptions(auto_refresh_token=False, persist_session=False),
    )


async def provision_user(auth_admin, store, request: CreateUserRequest) -> Dict:
    """
    Create an auth identity and its ``users`` profile.

    Args:
        auth_admin: Supabase auth admin API (``client.auth.admin``).
        store: Record store used for the profile insert.
        request (CreateUserRequest): email, password and profile data.

    Returns:
        Dict: The inserted profile.

    Raises:
        ProvisioningError: 400 for missing credentials or backend rejections,
        500 when no identity comes back. A failed profile insert deletes the
        identity before the error is raised.
    """
    if not request.email or not request.password:
        raise ProvisioningError("Email e password são obrigatórios", status_code=400)

    try:
        auth_response = await auth_admin.create_user({
            "email": request.email,
            "password": request.password,
            "email_confirm": True,
        })
    except Exception as e:
        logger.error(f"[{request.email}] Error creating auth user: {str(e)}")
        raise ProvisioningError(getattr(e, "message", None) or str(e), status_code=400) from e

    user = getattr(auth_response, "user", None)
    if user is None:
        logger.error(f"[{request.email}] Auth admin returned no user")
        raise ProvisioningError("Erro ao criar utilizador", status_code=500)

    data = request.userData
    profile = UserProfile(
        id=str(user.id),
        email=data.email,
        name=data.name,
        role=data.role or "vendedor",
        active=True,
        must_change_password=data.must_change_password is not False,
        commission_percentage=data.commission_percentage,
        commission_threshold=data.commission_threshold,
    )
    try:
        record = await store.insert("users", profile.to_record())
    except PersistenceError as e:
        logger.error(f"[{request.email}] Profile insert failed, removing auth user {user.id}: {e.message}")
        await auth_admin.delete_user(str(user.id))
        raise ProvisioningError(e.message, status_code=400) from e

    logger.info(f"[{request.email}] User created with role {profile.role}")
    return record
