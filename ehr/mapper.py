"""
内部表（patients / intake）↔ 标准格式（EhrPatient / EhrKarte）↔ CSV 行 的双向转换。

纯函数，不碰数据库，也不碰网络。
"""

from datetime import date

from django.utils import timezone

from .adapters.types import EhrKarte, EhrPatient
from .phone import normalize_jp_phone

# ── 问诊回答里的固定标签（patients 表没有的字段从这里补） ─────────────────
ANSWER_NAME_KANA = "氏名カナ"
ANSWER_SEX = "性別"
ANSWER_BIRTHDAY = "生年月日"
ANSWER_POSTAL_CODE = "郵便番号"
ANSWER_ADDRESS = "住所"

DIAGNOSIS_LABEL = "【傷病名】"
PRESCRIPTION_LABEL = "【処方】"

PATIENT_CSV_HEADERS = [
    "患者ID", "氏名", "氏名カナ", "性別", "生年月日", "電話番号", "郵便番号", "住所",
]
KARTE_CSV_HEADERS = [
    "患者ID", "診察日", "カルテ本文", "傷病名", "処方内容",
]


def _blank_to_none(value):
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None


# ── patients / intake ↔ EhrPatient ─────────────────────────────────────────

def to_ehr_patient(patient, latest_intake=None) -> EhrPatient:
    """
    patients 表的结构化字段优先；为空时才用最新问诊 answers 补。

    external_id 默认填内部 patient_id；已有映射时由 services.py 覆盖。
    """
    answers = {}
    if latest_intake is not None and isinstance(latest_intake.answers, dict):
        answers = latest_intake.answers

    def pick(column, label=None):
        value = _blank_to_none(getattr(patient, column, None)) if column else None
        if value is None and label:
            value = _blank_to_none(answers.get(label))
        return value

    return EhrPatient(
        external_id=patient.patient_id,
        name=patient.name or "",
        name_kana=pick("name_kana", ANSWER_NAME_KANA),
        sex=pick("sex", ANSWER_SEX),
        birthday=pick("birthday", ANSWER_BIRTHDAY),
        tel=pick("tel"),
        postal_code=pick(None, ANSWER_POSTAL_CODE),
        address=pick(None, ANSWER_ADDRESS),
    )


def from_ehr_patient(patient: EhrPatient) -> dict:
    """
    EhrPatient → patients 表的更新字段。只返回有值的字段，避免用空值覆盖。
    电话号码在这里规范化（且只在这里）。
    """
    updates = {}
    if patient.name:
        updates["name"] = patient.name
    if patient.name_kana:
        updates["name_kana"] = patient.name_kana
    if patient.sex:
        updates["sex"] = patient.sex
    if patient.birthday:
        updates["birthday"] = patient.birthday
    if patient.tel:
        updates["tel"] = normalize_jp_phone(patient.tel)
    return updates


# ── intake ↔ EhrKarte ──────────────────────────────────────────────────────

def to_ehr_karte(intake, patient) -> EhrKarte:
    created_at = getattr(intake, "created_at", None)
    if created_at is None:
        karte_date = date.today().isoformat()
    else:
        # 诊察日按本地时区取，导入时写的是本地零点
        if timezone.is_aware(created_at):
            created_at = timezone.localtime(created_at)
        karte_date = created_at.date().isoformat()
    return EhrKarte(
        external_id=str(intake.id) if intake.id is not None else None,
        patient_external_id=patient.patient_id,
        date=karte_date,
        content=intake.note or "",
    )


def from_ehr_karte(karte: EhrKarte) -> dict:
    """正文 → 傷病名 → 処方 的固定顺序拼成 intake.note，空段落省略。"""
    sections = []
    if karte.content:
        sections.append(karte.content)
    if karte.diagnosis:
        sections.append(f"{DIAGNOSIS_LABEL}{karte.diagnosis}")
    if karte.prescription:
        sections.append(f"{PRESCRIPTION_LABEL}{karte.prescription}")
    return {"note": "\n\n".join(sections)}


# ── CSV 行 ─────────────────────────────────────────────────────────────────
#
# 患者 8 列 / 病历 5 列，顺序与 *_CSV_HEADERS 一致。
# 空单元格 ↔ None。

def ehr_patient_to_csv_row(patient: EhrPatient) -> list[str]:
    return [
        patient.external_id or "",
        patient.name or "",
        patient.name_kana or "",
        patient.sex or "",
        patient.birthday or "",
        patient.tel or "",
        patient.postal_code or "",
        patient.address or "",
    ]


def _cell(row, index):
    return _blank_to_none(row[index]) if index < len(row) else None


def csv_row_to_ehr_patient(row: list[str]) -> EhrPatient | None:
    """少于 2 列（至少要有 患者ID + 氏名）返回 None。"""
    if len(row) < 2:
        return None

    tel = _cell(row, 5)
    return EhrPatient(
        external_id=row[0],
        name=row[1],
        name_kana=_cell(row, 2),
        sex=_cell(row, 3),
        birthday=_cell(row, 4),
        tel=normalize_jp_phone(tel) if tel else None,
        postal_code=_cell(row, 6),
        address=_cell(row, 7),
    )


def ehr_karte_to_csv_row(karte: EhrKarte) -> list[str]:
    return [
        karte.patient_external_id or "",
        karte.date or "",
        karte.content or "",
        karte.diagnosis or "",
        karte.prescription or "",
    ]


def csv_row_to_ehr_karte(row: list[str]) -> EhrKarte | None:
    """少于 3 列（患者ID + 診察日 + 本文）返回 None。"""
    if len(row) < 3:
        return None

    return EhrKarte(
        patient_external_id=row[0],
        date=row[1],
        content=row[2],
        diagnosis=_cell(row, 3),
        prescription=_cell(row, 4),
    )
