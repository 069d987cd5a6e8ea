"""
OrcaAdapter — ORCA（日医標準レセプトソフト）的 REST/XML API。

XML 用正则做「单标签取值」和「多块提取」，不用严格 XML 解析器：
ORCA 的输出偶尔不规范，严格解析会拒绝掉实际可用的数据。
请求体手工拼接，所有插值都做 XML 转义。

外部格式示例（patientgetv2 响应，节选）:
<xmlio2>
  <patientinfores type="record">
    <Patient_Information type="record">
      <Patient_ID type="string">00012</Patient_ID>
      <WholeName type="string">山田 太郎</WholeName>
      <WholeName_inKana type="string">ヤマダ タロウ</WholeName_inKana>
      <BirthDate type="string">1975-06-20</BirthDate>     ← 也可能是 19750620
      <Sex type="string">1</Sex>                          ← 1=男 2=女
      <Home_Address_Information type="record">
        <Address_ZipCode type="string">1130021</Address_ZipCode>
        <WholeAddress1 type="string">東京都文京区本駒込</WholeAddress1>
        <PhoneNumber1 type="string">03-3333-0001</PhoneNumber1>
      </Home_Address_Information>
    </Patient_Information>
  </patientinfores>
</xmlio2>

失败约定：网络错误 / 非 2xx 都抛异常；读方法自己接住并降级为 None / []，
写方法（push_patient / push_karte）原样抛给调用方。
"""

import logging
import re
from datetime import date
from typing import Optional
from xml.sax.saxutils import escape, unescape

import httpx

from ..exceptions import EhrApiError
from .base import BaseEhrAdapter
from .types import ConnectionResult, EhrKarte, EhrPatient, EhrProvider, OrcaConfig, PushResult

logger = logging.getLogger(__name__)

XML_CONTENT_TYPE = "application/xml"
CONNECTION_PROBE_ID = "00001"

PATIENT_GET_PATH = "/api01rv2/patientgetv2"
PATIENT_LIST_PATH = "/api01rv2/patientlst1v2"
PATIENT_MOD_PATH = "/api01rv2/patientmodv2"
MEDICAL_GET_PATH = "/api01rv2/medicalgetv2"
MEDICAL_MOD_PATH = "/api01rv2/medicalmodv2"

_SEX_FROM_ORCA = {"1": "男", "2": "女"}
_SEX_TO_ORCA = {"男": "1", "女": "2"}

_XML_ESCAPES = {'"': "&quot;", "'": "&apos;"}
_XML_UNESCAPES = {"&quot;": '"', "&apos;": "'"}


# ── 宽松 XML 提取 ──────────────────────────────────────────────────────────

def extract_tag(xml: str, tag: str) -> str:
    """取第一个 <tag ...>text</tag> 的文本；不存在返回 ""。允许标签带属性。"""
    match = re.search(rf"<{tag}(?:\s[^>]*)?>([^<]*)</{tag}>", xml)
    if not match:
        return ""
    return unescape(match.group(1), _XML_UNESCAPES).strip()


def extract_blocks(xml: str, tag: str) -> list[str]:
    """取所有 <tag ...>...</tag> 块（非贪婪，不处理同名嵌套）。"""
    return re.findall(rf"<{tag}(?:\s[^>]*)?>[\s\S]*?</{tag}>", xml)


def escape_xml(value: str | None) -> str:
    return escape(value or "", _XML_ESCAPES)


def format_orca_date(value: str) -> Optional[str]:
    """
    YYYYMMDD / YYYY-MM-DD → YYYY-MM-DD。
    长度对不上的原样返回（容错，不报错）。
    """
    if not value:
        return None
    digits = value.replace("-", "")
    if len(digits) != 8:
        return value
    return f"{digits[:4]}-{digits[4:6]}-{digits[6:]}"


class OrcaAdapter(BaseEhrAdapter):
    provider = EhrProvider.ORCA

    def __init__(self, config: OrcaConfig, transport: httpx.BaseTransport | None = None):
        self.config = config
        self._transport = transport
        prefix = "/api" if config.is_web else ""
        self.base_url = f"http://{config.host}:{config.port}{prefix}"

    # ── HTTP ───────────────────────────────────────────────────────────────

    def _request(self, path: str, method: str = "GET", params: dict | None = None,
                 body: str | None = None) -> str:
        logger.debug("[ehr][orca] %s %s", method, path)
        client = httpx.Client(
            base_url=self.base_url,
            auth=httpx.BasicAuth(self.config.user, self.config.password),
            headers={"Content-Type": XML_CONTENT_TYPE, "Accept": XML_CONTENT_TYPE},
            timeout=None,
            transport=self._transport,
        )
        with client:
            response = client.request(
                method,
                path,
                params=params,
                content=body.encode("utf-8") if body is not None else None,
            )
        if response.is_error:
            raise EhrApiError("ORCA", response.status_code, response.text)
        return response.text

    # ── 转换 ───────────────────────────────────────────────────────────────

    @staticmethod
    def xml_to_patient(xml: str) -> Optional[EhrPatient]:
        patient_id = extract_tag(xml, "Patient_ID")
        name = extract_tag(xml, "WholeName")
        if not patient_id and not name:
            return None

        # 1=男, 2=女, 其他代码原样透传
        sex_code = extract_tag(xml, "Sex")
        sex = _SEX_FROM_ORCA.get(sex_code, sex_code) or None

        return EhrPatient(
            external_id=patient_id,
            name=name,
            name_kana=extract_tag(xml, "WholeName_inKana") or None,
            sex=sex,
            birthday=format_orca_date(extract_tag(xml, "BirthDate")),
            tel=extract_tag(xml, "PhoneNumber1") or extract_tag(xml, "PhoneNumber2") or None,
            postal_code=(
                extract_tag(xml, "HomeAddress_ZipCode")
                or extract_tag(xml, "Address_ZipCode")
                or None
            ),
            address=extract_tag(xml, "WholeAddress1") or extract_tag(xml, "WholeAddress2") or None,
        )

    @staticmethod
    def patient_to_xml(patient: EhrPatient) -> str:
        # 男 / 女 以外的性别降级为空字符串（有损，已知）
        sex_code = _SEX_TO_ORCA.get(patient.sex, "")
        birthday = (patient.birthday or "").replace("-", "")

        return f"""<?xml version="1.0" encoding="UTF-8"?>
<data>
  <patientmodreq type="record">
    <Patient_ID type="string">{escape_xml(patient.external_id)}</Patient_ID>
    <WholeName type="string">{escape_xml(patient.name)}</WholeName>
    <WholeName_inKana type="string">{escape_xml(patient.name_kana)}</WholeName_inKana>
    <BirthDate type="string">{escape_xml(birthday)}</BirthDate>
    <Sex type="string">{sex_code}</Sex>
    <Home_Address_Information type="record">
      <PhoneNumber1 type="string">{escape_xml(patient.tel)}</PhoneNumber1>
      <HomeAddress_ZipCode type="string">{escape_xml(patient.postal_code)}</HomeAddress_ZipCode>
      <WholeAddress1 type="string">{escape_xml(patient.address)}</WholeAddress1>
    </Home_Address_Information>
  </patientmodreq>
</data>"""

    @staticmethod
    def karte_to_xml(karte: EhrKarte) -> str:
        perform_date = (karte.date or "").replace("-", "")
        return f"""<?xml version="1.0" encoding="UTF-8"?>
<data>
  <medicalmodreq type="record">
    <Patient_ID type="string">{escape_xml(karte.patient_external_id)}</Patient_ID>
    <Perform_Date type="string">{escape_xml(perform_date)}</Perform_Date>
    <Medical_Information type="string">{escape_xml(karte.content)}</Medical_Information>
  </medicalmodreq>
</data>"""

    # ── BaseEhrAdapter ────────────────────────────────────────────────────

    def test_connection(self) -> ConnectionResult:
        # 用哨兵患者 ID 查询一次，只看 API 是否应答
        try:
            self._request(PATIENT_GET_PATH, params={"id": CONNECTION_PROBE_ID})
        except (httpx.HTTPError, EhrApiError) as exc:
            return ConnectionResult(ok=False, message=f"Connection failed: {exc}")
        return ConnectionResult(ok=True, message="Connected to ORCA server.")

    def get_patient(self, external_id: str) -> Optional[EhrPatient]:
        try:
            xml = self._request(PATIENT_GET_PATH, params={"id": external_id})
        except (httpx.HTTPError, EhrApiError) as exc:
            logger.warning("[ehr][orca] get_patient(%s) 失败: %s", external_id, exc)
            return None
        return self.xml_to_patient(xml)

    def search_patients(
        self,
        name: Optional[str] = None,
        tel: Optional[str] = None,
        birthday: Optional[str] = None,
    ) -> list[EhrPatient]:
        # ORCA 只提供姓名检索；birthday / tel 在客户端对结果再过滤
        if not name:
            return []

        try:
            xml = self._request(PATIENT_LIST_PATH, params={"WholeName": name})
        except (httpx.HTTPError, EhrApiError) as exc:
            logger.warning("[ehr][orca] search_patients 失败: %s", exc)
            return []

        results = []
        for block in extract_blocks(xml, "Patient_Information"):
            patient = self.xml_to_patient(block)
            if patient is None:
                continue
            if birthday and patient.birthday != birthday:
                continue
            if tel and patient.tel and tel not in patient.tel:
                continue
            results.append(patient)
        return results

    def push_patient(self, patient: EhrPatient) -> PushResult:
        xml = self._request(PATIENT_MOD_PATH, method="POST", body=self.patient_to_xml(patient))
        # 响应里没有 Patient_ID 时沿用请求的 external_id
        return PushResult(external_id=extract_tag(xml, "Patient_ID") or patient.external_id)

    def get_karte_list(self, patient_external_id: str) -> list[EhrKarte]:
        try:
            xml = self._request(MEDICAL_GET_PATH, params={"id": patient_external_id})
        except (httpx.HTTPError, EhrApiError) as exc:
            logger.warning("[ehr][orca] get_karte_list(%s) 失败: %s", patient_external_id, exc)
            return []

        return [
            EhrKarte(
                external_id=extract_tag(block, "Medical_ID") or None,
                patient_external_id=patient_external_id,
                date=(
                    format_orca_date(extract_tag(block, "Perform_Date"))
                    or date.today().isoformat()
                ),
                content=extract_tag(block, "Medical_Information_child"),
                diagnosis=extract_tag(block, "Disease_Name") or None,
                prescription=extract_tag(block, "Medication_Name") or None,
            )
            for block in extract_blocks(xml, "Medical_Information")
        ]

    def push_karte(self, karte: EhrKarte) -> None:
        self._request(MEDICAL_MOD_PATH, method="POST", body=self.karte_to_xml(karte))
