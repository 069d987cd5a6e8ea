"""
CsvAdapter — 文件批量导入 / 导出用的离线 Adapter。

数据只存在本进程内存里（两个 list），只能通过 load_patients() / load_kartes() 显式载入，
不做懒加载，也不跨进程持久化。任何方法都不抛异常：找不到就是 None / []。

CSV 格式：
  - 患者 8 列 / 病历 5 列，首行表头（患者ID, 氏名, ...）
  - 每个单元格都用双引号包裹，内部双引号写成 ""
  - 行分隔符 \\r\\n
  - 已知限制：单元格里的换行不做转义，会破坏行边界。
    下游系统依赖现有行为，这里保持原样。
"""

import csv
import dataclasses
import logging
import re
from typing import Optional

from ..mapper import (
    KARTE_CSV_HEADERS,
    PATIENT_CSV_HEADERS,
    csv_row_to_ehr_karte,
    csv_row_to_ehr_patient,
    ehr_karte_to_csv_row,
    ehr_patient_to_csv_row,
)
from .base import BaseEhrAdapter
from .types import ConnectionResult, EhrKarte, EhrPatient, EhrProvider, PushResult

logger = logging.getLogger(__name__)

HEADER_MARKER = PATIENT_CSV_HEADERS[0]   # "患者ID"，两种 CSV 的首列相同
ROW_SEPARATOR = "\r\n"

_LINE_RE = re.compile(r"\r?\n")


# ── CSV 文本编解码 ─────────────────────────────────────────────────────────

def parse_csv(text: str) -> list[list[str]]:
    """
    按行切分后逐行解析。空行跳过，单元格去首尾空白。

    先按换行切再解析，所以引号内的换行不会被识别（见模块说明的已知限制）。
    """
    rows = []
    for line in _LINE_RE.split(text or ""):
        if not line.strip():
            continue
        cells = next(csv.reader([line]))
        rows.append([cell.strip() for cell in cells])
    return rows


def _quote(cell: str) -> str:
    return '"' + (cell or "").replace('"', '""') + '"'


def _render(headers: list[str], rows: list[list[str]]) -> str:
    lines = [",".join(_quote(c) for c in headers)]
    lines.extend(",".join(_quote(c) for c in row) for row in rows)
    return ROW_SEPARATOR.join(lines)


def _data_rows(text: str) -> list[list[str]]:
    rows = parse_csv(text)
    # 只有首格恰好是「患者ID」才当作表头跳过
    if rows and rows[0] and rows[0][0] == HEADER_MARKER:
        rows = rows[1:]
    return rows


def generate_patient_csv(patients: list[EhrPatient]) -> str:
    return _render(PATIENT_CSV_HEADERS, [ehr_patient_to_csv_row(p) for p in patients])


def generate_karte_csv(kartes: list[EhrKarte]) -> str:
    return _render(KARTE_CSV_HEADERS, [ehr_karte_to_csv_row(k) for k in kartes])


def parse_patient_csv(text: str) -> list[EhrPatient]:
    patients = []
    for row in _data_rows(text):
        patient = csv_row_to_ehr_patient(row)
        if patient is not None:
            patients.append(patient)
    return patients


def parse_karte_csv(text: str) -> list[EhrKarte]:
    kartes = []
    for row in _data_rows(text):
        karte = csv_row_to_ehr_karte(row)
        if karte is not None:
            kartes.append(karte)
    return kartes


# ── CsvAdapter ─────────────────────────────────────────────────────────────

class CsvAdapter(BaseEhrAdapter):
    provider = EhrProvider.CSV

    def __init__(self):
        self._patients: list[EhrPatient] = []
        self._kartes: list[EhrKarte] = []

    # ── 载入 / 导出 ────────────────────────────────────────────────────────

    def load_patients(self, text: str) -> int:
        self._patients = parse_patient_csv(text)
        logger.debug("[ehr][csv] 载入患者 %d 件", len(self._patients))
        return len(self._patients)

    def load_kartes(self, text: str) -> int:
        self._kartes = parse_karte_csv(text)
        logger.debug("[ehr][csv] 载入病历 %d 件", len(self._kartes))
        return len(self._kartes)

    def export_patient_csv(self) -> str:
        return generate_patient_csv(self._patients)

    def export_karte_csv(self) -> str:
        return generate_karte_csv(self._kartes)

    # ── BaseEhrAdapter ────────────────────────────────────────────────────

    def test_connection(self) -> ConnectionResult:
        return ConnectionResult(
            ok=True,
            message=(
                f"CSV adapter ready "
                f"(patients: {len(self._patients)}, kartes: {len(self._kartes)})"
            ),
        )

    def get_patient(self, external_id: str) -> Optional[EhrPatient]:
        for patient in self._patients:
            if patient.external_id == external_id:
                return dataclasses.replace(patient)
        return None

    def search_patients(
        self,
        name: Optional[str] = None,
        tel: Optional[str] = None,
        birthday: Optional[str] = None,
    ) -> list[EhrPatient]:
        # 所有给出的条件 AND 组合；name 部分匹配，tel / birthday 完全匹配
        results = []
        for patient in self._patients:
            if name and name not in (patient.name or ""):
                continue
            if tel and patient.tel != tel:
                continue
            if birthday and patient.birthday != birthday:
                continue
            results.append(dataclasses.replace(patient))
        return results

    def push_patient(self, patient: EhrPatient) -> PushResult:
        # external_id 由调用方提供，CSV 不生成 ID
        record = dataclasses.replace(patient)
        for i, existing in enumerate(self._patients):
            if existing.external_id == patient.external_id:
                self._patients[i] = record
                break
        else:
            self._patients.append(record)
        return PushResult(external_id=patient.external_id)

    def get_karte_list(self, patient_external_id: str) -> list[EhrKarte]:
        return [
            dataclasses.replace(k)
            for k in self._kartes
            if k.patient_external_id == patient_external_id
        ]

    def push_karte(self, karte: EhrKarte) -> None:
        record = dataclasses.replace(karte)
        if karte.external_id:
            for i, existing in enumerate(self._kartes):
                if existing.external_id == karte.external_id:
                    self._kartes[i] = record
                    return
        self._kartes.append(record)
