from fastapi import FastAPI, Request, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import Dict, List, Optional, Union
from config.config import SUPABASE_JWT_SECRET, CORS_ORIGINS
import jwt
from flows.intake_controller import IntakeController
from flows.sale_intake import IntakeFlow, IntakeStep, AddressResolution
from models.user_data import CreateUserRequest
from tools.supabase_tools import SupabaseStore
from tools.catalog_tools import get_partners, get_operators
from tools.sales_tools import get_sales, get_sale_by_id, get_sale_statistics
from tools.user_tools import get_admin_client, provision_user
from utils.errors import (
    IntakeError, IntakeStateError, PersistenceError, ProvisioningError, RecordLookupError, SaleValidationError,
)
from utils.logging_setup import setup_logging

logger = setup_logging()
app = FastAPI(title="Sales intake")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Log requests and responses
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"Request: {request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"Response: {request.method} {request.url.path} -> {response.status_code}")
    return response

# Authentication dependency
async def get_current_user(request: Request) -> Dict:
    token = request.headers.get("Authorization", "").replace("Bearer ", "")
    if not token:
        logger.error("No token provided in Authorization header")
        raise HTTPException(status_code=401, detail="No token provided")
    if not SUPABASE_JWT_SECRET:
        logger.error("SUPABASE_JWT_SECRET is not set in environment variables")
        raise HTTPException(status_code=500, detail="Server configuration error: JWT secret missing")
    try:
        payload = jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            options={"verify_aud": False, "leeway": 60}
        )
        return {"user_id": payload["sub"], "email": payload.get("email")}
    except jwt.ExpiredSignatureError as e:
        logger.error(f"JWT expired: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token: JWT expired")
    except jwt.InvalidSignatureError as e:
        logger.error(f"Invalid JWT signature: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token: Invalid signature")
    except (jwt.InvalidTokenError, KeyError) as e:
        logger.error(f"Invalid token: {str(e)}")
        raise HTTPException(status_code=401, detail=f"Invalid token: {str(e)}")

# Supabase store dependency
async def get_store() -> SupabaseStore:
    try:
        return await SupabaseStore.connect()
    except RecordLookupError as e:
        raise HTTPException(status_code=500, detail=e.message)

async def get_user_admin():
    try:
        return await get_admin_client()
    except ProvisioningError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

def raise_http(e: IntakeError):
    if isinstance(e, SaleValidationError):
        raise HTTPException(status_code=422, detail={"message": e.message, "field": e.field})
    if isinstance(e, IntakeStateError):
        raise HTTPException(status_code=409, detail=e.message)
    if isinstance(e, RecordLookupError):
        raise HTTPException(status_code=502, detail=e.message)
    if isinstance(e, PersistenceError):
        raise HTTPException(status_code=400, detail=e.message)
    if isinstance(e, ProvisioningError):
        raise HTTPException(status_code=e.status_code, detail=e.message)
    raise HTTPException(status_code=500, detail=e.message)

# Pydantic models
class NifCheck(BaseModel):
    tax_id: str

class BranchChoice(BaseModel):
    flow: IntakeFlow

class ReferenceChoice(BaseModel):
    sale_id: str

class FieldUpdate(BaseModel):
    field: str
    value: Union[bool, int, float, str, None] = None

class AddressChangeChoice(BaseModel):
    resolution: AddressResolution

# In-memory intake sessions, one per draft sale
sessions: Dict[str, IntakeController] = {}

def session_view(controller: IntakeController) -> Dict:
    return {
        "session_id": controller.session_id,
        "state": controller.state.model_dump(mode="json"),
        "category": controller.state.draft.category,
        "available_operators": [op.model_dump(mode="json") for op in controller.available_operators()],
    }

def finish_session(controller: IntakeController) -> Dict:
    view = session_view(controller)
    if controller.state.step is IntakeStep.DONE:
        sessions.pop(controller.session_id, None)
        logger.info(f"[{controller.session_id}] Intake session closed after sale {(controller.state.created_sale or {}).get('id')}")
    return view

def get_session(session_id: str, user: Dict) -> IntakeController:
    controller = sessions.get(session_id)
    if controller is None or controller.owner_id != user["user_id"]:
        raise HTTPException(status_code=404, detail="Intake session not found")
    return controller

@app.post("/intake")
async def start_intake(user: dict = Depends(get_current_user), store: SupabaseStore = Depends(get_store)):
    controller = IntakeController(store, owner_id=user["user_id"])
    sessions[controller.session_id] = controller
    logger.info(f"[{controller.session_id}] Intake session started by {user['user_id']}")
    return session_view(controller)

@app.get("/intake/{session_id}")
async def get_intake(session_id: str, user: dict = Depends(get_current_user)):
    return session_view(get_session(session_id, user))

@app.delete("/intake/{session_id}")
async def discard_intake(session_id: str, user: dict = Depends(get_current_user)):
    get_session(session_id, user)
    del sessions[session_id]
    return {"status": "discarded"}

@app.post("/intake/{session_id}/nif")
async def check_nif(session_id: str, data: NifCheck, user: dict = Depends(get_current_user)):
    controller = get_session(session_id, user)
    try:
        await controller.check_nif(data.tax_id)
    except IntakeError as e:
        raise_http(e)
    return session_view(controller)

@app.post("/intake/{session_id}/branch")
async def choose_branch(session_id: str, data: BranchChoice, user: dict = Depends(get_current_user)):
    controller = get_session(session_id, user)
    try:
        await controller.choose_branch(data.flow)
    except IntakeError as e:
        raise_http(e)
    return session_view(controller)

@app.post("/intake/{session_id}/branch/cancel")
async def cancel_branch(session_id: str, user: dict = Depends(get_current_user)):
    controller = get_session(session_id, user)
    try:
        controller.cancel_branch()
    except IntakeError as e:
        raise_http(e)
    return session_view(controller)

@app.post("/intake/{session_id}/reference")
async def select_reference(session_id: str, data: ReferenceChoice, user: dict = Depends(get_current_user)):
    controller = get_session(session_id, user)
    try:
        await controller.select_reference(data.sale_id)
    except IntakeError as e:
        raise_http(e)
    return session_view(controller)

@app.post("/intake/{session_id}/renewal/{sale_id}")
async def start_renewal(session_id: str, sale_id: str, user: dict = Depends(get_current_user)):
    controller = get_session(session_id, user)
    try:
        await controller.start_renewal_from(sale_id)
    except IntakeError as e:
        raise_http(e)
    return session_view(controller)

@app.patch("/intake/{session_id}/fields")
async def change_fields(session_id: str, updates: List[FieldUpdate], user: dict = Depends(get_current_user)):
    controller = get_session(session_id, user)
    try:
        for update in updates:
            await controller.change_field(update.field, update.value)
    except IntakeError as e:
        raise_http(e)
    return session_view(controller)

@app.get("/intake/{session_id}/operators")
async def intake_operators(session_id: str, user: dict = Depends(get_current_user)):
    controller = get_session(session_id, user)
    return [op.model_dump(mode="json") for op in controller.available_operators()]

@app.post("/intake/{session_id}/submit")
async def submit_intake(session_id: str, user: dict = Depends(get_current_user)):
    controller = get_session(session_id, user)
    try:
        await controller.submit()
    except IntakeError as e:
        raise_http(e)
    return finish_session(controller)

@app.post("/intake/{session_id}/address-change")
async def resolve_address_change(session_id: str, data: AddressChangeChoice, user: dict = Depends(get_current_user)):
    controller = get_session(session_id, user)
    try:
        await controller.resolve_address_change(data.resolution)
    except IntakeError as e:
        raise_http(e)
    return finish_session(controller)

@app.get("/sales")
async def list_sales(
    status: Optional[str] = None,
    category: Optional[str] = None,
    partner_id: Optional[str] = None,
    seller_id: Optional[str] = None,
    user: dict = Depends(get_current_user),
    store: SupabaseStore = Depends(get_store),
):
    try:
        return await get_sales(store, seller_id=seller_id, status=status, category=category, partner_id=partner_id)
    except IntakeError as e:
        raise_http(e)

@app.get("/sales/statistics")
async def sales_statistics(user: dict = Depends(get_current_user), store: SupabaseStore = Depends(get_store)):
    try:
        return await get_sale_statistics(store)
    except IntakeError as e:
        raise_http(e)

@app.get("/sales/{sale_id}")
async def read_sale(sale_id: str, user: dict = Depends(get_current_user), store: SupabaseStore = Depends(get_store)):
    try:
        sale = await get_sale_by_id(store, sale_id)
    except IntakeError as e:
        raise_http(e)
    if not sale:
        raise HTTPException(status_code=404, detail="Sale not found")
    return sale

@app.get("/partners")
async def list_partners(include_inactive: bool = False, user: dict = Depends(get_current_user), store: SupabaseStore = Depends(get_store)):
    try:
        return await get_partners(store, include_inactive)
    except IntakeError as e:
        raise_http(e)

@app.get("/operators")
async def list_operators(partner_id: Optional[str] = None, include_inactive: bool = False, user: dict = Depends(get_current_user), store: SupabaseStore = Depends(get_store)):
    try:
        operators = await get_operators(store, partner_id, include_inactive)
    except IntakeError as e:
        raise_http(e)
    return [op.model_dump(mode="json") for op in operators]

@app.post("/create-user")
async def create_user(data: CreateUserRequest, user: dict = Depends(get_current_user), admin=Depends(get_user_admin)):
    store = SupabaseStore(admin)
    try:
        profiles = await store.find("users", {"id": user["user_id"]})
        if not profiles or profiles[0].get("role") != "admin":
            logger.error(f"User {user['user_id']} tried to create a user without admin role")
            raise HTTPException(status_code=403, detail="Only admins can create users")
        profile = await provision_user(admin.auth.admin, store, data)
    except IntakeError as e:
        raise_http(e)
    return {"user": profile}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
