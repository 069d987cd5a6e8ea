"""
电子病历连携的标准格式（Canonical Model）。

三种 Adapter（ORCA / FHIR / CSV）只认识 EhrPatient / EhrKarte，
业务层（services.py）通过 mapper.py 在内部表和这两个结构之间转换，
永远不碰外部系统的原始 XML / JSON / CSV。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class EhrProvider(str, Enum):
    ORCA = "orca"
    CSV = "csv"
    FHIR = "fhir"


class SyncDirection(str, Enum):
    PUSH = "push"   # 内部 → 外部
    PULL = "pull"   # 外部 → 内部


class ResourceType(str, Enum):
    PATIENT = "patient"
    KARTE = "karte"


class SyncStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class EhrPatient:
    """每次同步时临时构建，不持久化。birthday 为 "YYYY-MM-DD"。"""

    external_id: str
    name: str
    name_kana: Optional[str] = None
    sex: Optional[str] = None
    birthday: Optional[str] = None
    tel: Optional[str] = None
    postal_code: Optional[str] = None
    address: Optional[str] = None
    insurance_info: Optional[str] = None


@dataclass
class EhrKarte:
    """一次诊察 / 一条病历记录。date 为 "YYYY-MM-DD"。"""

    patient_external_id: str
    date: str
    content: str
    external_id: Optional[str] = None
    diagnosis: Optional[str] = None
    prescription: Optional[str] = None


@dataclass
class ConnectionResult:
    ok: bool
    message: str


@dataclass
class PushResult:
    external_id: str


@dataclass
class SyncResult:
    """
    单次同步调用的结果。

    每个 SyncResult 都会被写入 ehr_sync_logs（追加写，不修改）。
    """

    provider: EhrProvider
    direction: SyncDirection
    resource_type: ResourceType
    status: SyncStatus
    patient_id: Optional[str] = None
    external_id: Optional[str] = None
    detail: Optional[str] = None


@dataclass
class OrcaConfig:
    host: str = "localhost"
    port: int = 8000
    user: str = ""
    password: str = ""
    is_web: bool = False   # WebORCA：所有路径加 /api 前缀


@dataclass
class FhirConfig:
    base_url: str
    auth_type: str = "bearer"   # "bearer" | "basic"
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
