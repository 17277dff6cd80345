from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel
from .models import OrgRole, TransactionAction
from .services.layout import SplitOrientation


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_expires_in: int


class UserBase(BaseModel):
    id: int
    org_id: int
    login: str
    name: str
    role: OrgRole
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class LockStateOut(BaseModel):
    locked: bool
    holder: Optional[int] = None
    expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LockResultOut(BaseModel):
    success: bool
    message: str
    locked_by: Optional[int] = None
    previous_holder: Optional[int] = None
    revision_id: Optional[int] = None

    class Config:
        from_attributes = True


class LockRelease(BaseModel):
    has_changes: bool = False
    description: Optional[str] = None


class BlueprintBase(BaseModel):
    id: int
    org_id: int
    name: str
    locked_by: Optional[int]
    lock_timestamp: Optional[datetime]
    background_image_id: Optional[str]
    last_revision_version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BlueprintWithLock(BaseModel):
    blueprint: BlueprintBase
    lock: LockStateOut

    class Config:
        from_attributes = True


class BlueprintCreate(BaseModel):
    name: str


class BlueprintRename(BaseModel):
    name: str


class DrawerBase(BaseModel):
    id: int
    blueprint_id: int
    x: float
    y: float
    width: float
    height: float
    rotation: float
    z_index: int
    grid_rows: Optional[int]
    grid_cols: Optional[int]
    label: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DrawerCreate(BaseModel):
    blueprint_id: int
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0
    z_index: Optional[int] = None
    label: Optional[str] = None
    grid_rows: Optional[int] = None
    grid_cols: Optional[int] = None


class DrawerUpdate(BaseModel):
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    rotation: Optional[float] = None
    label: Optional[str] = None


class DividerBase(BaseModel):
    id: int
    blueprint_id: int
    x1: float
    y1: float
    x2: float
    y2: float
    thickness: float
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DividerCreate(BaseModel):
    blueprint_id: int
    x1: float
    y1: float
    x2: float
    y2: float
    thickness: Optional[float] = None


class DividerUpdate(BaseModel):
    x1: Optional[float] = None
    y1: Optional[float] = None
    x2: Optional[float] = None
    y2: Optional[float] = None
    thickness: Optional[float] = None


class CompartmentBase(BaseModel):
    id: int
    drawer_id: int
    x: float
    y: float
    width: float
    height: float
    rotation: float
    z_index: int
    label: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CompartmentCreate(BaseModel):
    drawer_id: int
    x: float
    y: float
    width: float
    height: float
    rotation: float = 0
    z_index: Optional[int] = None
    label: Optional[str] = None


class CompartmentUpdate(BaseModel):
    drawer_id: Optional[int] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    rotation: Optional[float] = None
    label: Optional[str] = None


class ZIndexUpdate(BaseModel):
    z_index: int


class ReorderItem(BaseModel):
    id: int
    z_index: int


class ReorderRequest(BaseModel):
    items: List[ReorderItem]


class GridRequest(BaseModel):
    rows: int
    cols: int


class GridResultOut(BaseModel):
    drawer: DrawerBase
    compartments: List[CompartmentBase]
    created: List[int]
    deleted: List[int]

    class Config:
        from_attributes = True


class SplitRequest(BaseModel):
    orientation: SplitOrientation
    position: float
    compartment_id: Optional[int] = None


class SwapRequest(BaseModel):
    a_id: int
    b_id: int


class MergeRequest(BaseModel):
    keep_id: int
    absorb_id: int


class RegridOut(BaseModel):
    rows: Optional[int] = None
    cols: Optional[int] = None


class LayoutOut(BaseModel):
    blueprint: BlueprintBase
    lock: LockStateOut
    drawers: List[DrawerBase]
    compartments: List[CompartmentBase]
    dividers: List[DividerBase] = []

    class Config:
        from_attributes = True


class RevisionBase(BaseModel):
    id: int
    blueprint_id: int
    version: int
    description: Optional[str]
    created_by: int
    created_by_name: str
    created_at: datetime
    state: Optional[dict] = None

    class Config:
        from_attributes = True


class RevisionCreate(BaseModel):
    state: Optional[dict] = None
    description: Optional[str] = None


class RevisionCreated(BaseModel):
    id: int
    version: int

    class Config:
        from_attributes = True


class RestoreRequest(BaseModel):
    description: Optional[str] = None


class RestoreResultOut(BaseModel):
    success: bool
    message: str
    backup_revision_id: Optional[int] = None
    new_revision_id: Optional[int] = None

    class Config:
        from_attributes = True


class RevisionCountOut(BaseModel):
    count: int
    max_revisions: int
    is_near_limit: bool

    class Config:
        from_attributes = True


class PartBase(BaseModel):
    id: int
    name: str
    sku: str
    category: str
    description: Optional[str]
    archived: bool
    created_at: datetime

    class Config:
        from_attributes = True


class PartCreate(BaseModel):
    name: str
    sku: str
    category: str = ""
    description: Optional[str] = None


class InventoryBase(BaseModel):
    id: int
    part_id: int
    compartment_id: int
    quantity: int
    updated_at: datetime

    class Config:
        from_attributes = True


class StockRequest(BaseModel):
    part_id: int
    compartment_id: int
    quantity: int
    notes: Optional[str] = None


class MoveRequest(BaseModel):
    part_id: int
    source_compartment_id: int
    dest_compartment_id: int
    quantity: int
    notes: Optional[str] = None


class StockChangeOut(BaseModel):
    inventory_id: int
    transaction_id: int
    old_quantity: int
    new_quantity: int

    class Config:
        from_attributes = True


class StockMoveOut(BaseModel):
    source_inventory_id: int
    dest_inventory_id: int
    transaction_id: int
    source_quantity: int
    dest_quantity: int

    class Config:
        from_attributes = True


class TransactionBase(BaseModel):
    id: int
    action_type: TransactionAction
    quantity_delta: int
    source_compartment_id: Optional[int]
    dest_compartment_id: Optional[int]
    part_id: int
    user_id: int
    timestamp: datetime
    notes: Optional[str]

    class Config:
        from_attributes = True


class AuditEntry(BaseModel):
    id: int
    user_id: Optional[int]
    action: str
    entity_type: str
    entity_id: Optional[int]
    payload_json: Optional[dict]
    created_at: datetime

    class Config:
        from_attributes = True
