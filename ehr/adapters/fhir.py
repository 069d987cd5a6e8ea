"""
FhirAdapter — HL7 FHIR R4 服务器（Patient / DocumentReference）。

映射规则：
  gender      男 → male，女 → female，其他 → unknown；反向 male → 男，female → 女，其他 → None
  name        优先 name[0].text，否则 family + given[] 用空格拼接
  telecom     取第一个 system=phone；push 时只写一条 use=mobile
  address     取第一个；push 时只写一条 use=home（text + postalCode）
  DocumentReference
              正文以 base64 UTF-8 的 text/plain 附件为准；
              description 只是前 200 字的摘要，便于检索

push_karte 只 POST（只建不改），重复调用会在服务器产生重复 DocumentReference。
"""

import base64
import binascii
import logging
from datetime import date
from typing import Any, Optional

import httpx

from ..exceptions import EhrApiError
from .base import BaseEhrAdapter
from .types import ConnectionResult, EhrKarte, EhrPatient, EhrProvider, FhirConfig, PushResult

logger = logging.getLogger(__name__)

FHIR_CONTENT_TYPE = "application/fhir+json"
DESCRIPTION_MAX_LENGTH = 200

_GENDER_TO_FHIR = {"男": "male", "女": "female"}
_GENDER_FROM_FHIR = {"male": "男", "female": "女"}


def _dicts(value) -> list[dict]:
    """list 里的 dict 元素；其他形状视为空。"""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _text(value) -> Optional[str]:
    return value if isinstance(value, str) else None


def _saved_id(resource) -> Optional[str]:
    return _text(resource.get("id")) if isinstance(resource, dict) else None


class FhirAdapter(BaseEhrAdapter):
    provider = EhrProvider.FHIR

    def __init__(self, config: FhirConfig, transport: httpx.BaseTransport | None = None):
        self.config = config
        self._transport = transport

    # ── HTTP ───────────────────────────────────────────────────────────────

    def _client(self) -> httpx.Client:
        headers = {
            "Content-Type": FHIR_CONTENT_TYPE,
            "Accept": FHIR_CONTENT_TYPE,
            # create / update 都要拿到带 id 的资源本体
            "Prefer": "return=representation",
        }
        auth = None

        if self.config.auth_type == "bearer" and self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        elif self.config.auth_type == "basic" and self.config.username and self.config.password:
            auth = httpx.BasicAuth(self.config.username, self.config.password)

        # 不设超时，与 ORCA 一致：请求卡住时同步批次一起等待
        return httpx.Client(
            base_url=self.config.base_url,
            headers=headers,
            auth=auth,
            timeout=None,
            transport=self._transport,
        )

    def _request(self, method: str, path: str, params: dict | None = None, body: Any = None) -> Any:
        logger.debug("[ehr][fhir] %s %s", method, path)
        with self._client() as client:
            response = client.request(method, path, params=params, json=body)
        if response.is_error:
            raise EhrApiError("FHIR", response.status_code, response.text)
        return response.json()

    # ── 转换 ───────────────────────────────────────────────────────────────

    @staticmethod
    def fhir_to_patient(resource: dict) -> EhrPatient:
        # 服务器返回的结构不可信：非 dict / 非 list / 非字符串一律当作缺失
        name = next(iter(_dicts(resource.get("name"))), {})
        given = name.get("given") if isinstance(name.get("given"), list) else []
        full_name = _text(name.get("text")) or " ".join(
            part for part in [_text(name.get("family")), *map(_text, given)] if part
        )

        phone = next(
            (t for t in _dicts(resource.get("telecom")) if t.get("system") == "phone"),
            {},
        )
        address = next(iter(_dicts(resource.get("address"))), {})

        return EhrPatient(
            external_id=_text(resource.get("id")) or "",
            name=full_name or "",
            sex=_GENDER_FROM_FHIR.get(_text(resource.get("gender"))),
            birthday=_text(resource.get("birthDate")),
            tel=_text(phone.get("value")),
            postal_code=_text(address.get("postalCode")),
            address=_text(address.get("text")),
        )

    @staticmethod
    def patient_to_fhir(patient: EhrPatient) -> dict:
        resource = {
            "resourceType": "Patient",
            "name": [{"use": "official", "text": patient.name}],
            "gender": _GENDER_TO_FHIR.get(patient.sex, "unknown"),
        }
        if patient.birthday:
            resource["birthDate"] = patient.birthday
        if patient.external_id:
            resource["id"] = patient.external_id
        if patient.tel:
            resource["telecom"] = [{"system": "phone", "value": patient.tel, "use": "mobile"}]
        if patient.address or patient.postal_code:
            address = {"use": "home"}
            if patient.address:
                address["text"] = patient.address
            if patient.postal_code:
                address["postalCode"] = patient.postal_code
            resource["address"] = [address]
        return resource

    @staticmethod
    def fhir_to_karte(resource: dict, patient_external_id: str) -> EhrKarte:
        content = ""
        first = next(iter(_dicts(resource.get("content"))), {})
        attachment = first.get("attachment") if isinstance(first.get("attachment"), dict) else {}
        data = _text(attachment.get("data"))
        if data:
            try:
                content = base64.b64decode(data).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError):
                content = ""

        return EhrKarte(
            external_id=_text(resource.get("id")),
            patient_external_id=patient_external_id,
            date=(_text(resource.get("date")) or "")[:10] or date.today().isoformat(),
            content=content or _text(resource.get("description")) or "",
        )

    @staticmethod
    def karte_to_fhir(karte: EhrKarte) -> dict:
        return {
            "resourceType": "DocumentReference",
            "subject": {"reference": f"Patient/{karte.patient_external_id}"},
            "date": karte.date,
            "description": karte.content[:DESCRIPTION_MAX_LENGTH],
            "content": [{
                "attachment": {
                    "contentType": "text/plain",
                    "data": base64.b64encode(karte.content.encode("utf-8")).decode("ascii"),
                },
            }],
        }

    def _bundle_resources(self, bundle: Any, resource_type: str) -> list[dict]:
        if not isinstance(bundle, dict):
            return []
        return [
            entry["resource"]
            for entry in _dicts(bundle.get("entry"))
            if isinstance(entry.get("resource"), dict)
            and entry["resource"].get("resourceType") == resource_type
        ]

    # ── BaseEhrAdapter ────────────────────────────────────────────────────

    def test_connection(self) -> ConnectionResult:
        try:
            self._request("GET", "/metadata")
        except (httpx.HTTPError, EhrApiError, ValueError) as exc:
            return ConnectionResult(ok=False, message=f"Connection failed: {exc}")
        return ConnectionResult(ok=True, message="Connected to FHIR server.")

    def get_patient(self, external_id: str) -> Optional[EhrPatient]:
        # 4xx / 5xx / 网络错误不区分，一律 None
        try:
            resource = self._request("GET", f"/Patient/{external_id}")
        except (httpx.HTTPError, EhrApiError, ValueError) as exc:
            logger.warning("[ehr][fhir] get_patient(%s) 失败: %s", external_id, exc)
            return None
        if not isinstance(resource, dict):
            return None
        return self.fhir_to_patient(resource)

    def search_patients(
        self,
        name: Optional[str] = None,
        tel: Optional[str] = None,
        birthday: Optional[str] = None,
    ) -> list[EhrPatient]:
        params = {}
        if name:
            params["name"] = name
        if tel:
            params["telecom"] = tel
        if birthday:
            params["birthdate"] = birthday

        try:
            bundle = self._request("GET", "/Patient", params=params)
        except (httpx.HTTPError, EhrApiError, ValueError) as exc:
            logger.warning("[ehr][fhir] search_patients 失败: %s", exc)
            return []
        return [self.fhir_to_patient(r) for r in self._bundle_resources(bundle, "Patient")]

    def push_patient(self, patient: EhrPatient) -> PushResult:
        resource = self.patient_to_fhir(patient)

        if patient.external_id:
            saved = self._request("PUT", f"/Patient/{patient.external_id}", body=resource)
            # 以服务器返回的 id 为准，更新时也一样
            return PushResult(external_id=_saved_id(saved) or patient.external_id)

        saved = self._request("POST", "/Patient", body=resource)
        return PushResult(external_id=_saved_id(saved) or "")

    def get_karte_list(self, patient_external_id: str) -> list[EhrKarte]:
        try:
            bundle = self._request(
                "GET",
                "/DocumentReference",
                params={"subject": f"Patient/{patient_external_id}"},
            )
        except (httpx.HTTPError, EhrApiError, ValueError) as exc:
            logger.warning("[ehr][fhir] get_karte_list(%s) 失败: %s", patient_external_id, exc)
            return []
        return [
            self.fhir_to_karte(r, patient_external_id)
            for r in self._bundle_resources(bundle, "DocumentReference")
        ]

    def push_karte(self, karte: EhrKarte) -> None:
        self._request("POST", "/DocumentReference", body=self.karte_to_fhir(karte))
