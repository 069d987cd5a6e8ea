"""
电子病历同步编排层。

唯一允许读写内部 patients / intake 表、映射表、同步日志的地方；Adapter 从不碰内部存储。

约定：
  - 所有公开操作都返回 SyncResult，不向外抛异常（内部异常转成 status="error"）
  - 每个 SyncResult 恰好写一行 ehr_sync_logs（含 skipped）
  - tenant_id 显式传入每个调用，没有全局 / 隐式租户
  - 批量同步严格串行：同一时刻只有一个外部请求在途
"""

import logging
from datetime import date, datetime, time

from django.db import DatabaseError, transaction
from django.utils import timezone

from .adapters.csvfile import CsvAdapter, parse_karte_csv
from .adapters.types import (
    EhrProvider,
    ResourceType,
    SyncDirection,
    SyncResult,
    SyncStatus,
)
from .exceptions import BlockError
from .mapper import from_ehr_karte, from_ehr_patient, to_ehr_karte, to_ehr_patient
from .models import Intake, Patient, PatientMapping, SyncLog

logger = logging.getLogger(__name__)

BATCH_SIZE = 50
IMPORTED_INTAKE_STATUS = 'OK'


# ── 同步日志 ───────────────────────────────────────────────────────────────

def log_sync(result, tenant_id):
    """追加一行同步日志。写日志失败只记 logger，不影响同步结果。"""
    try:
        SyncLog.objects.create(
            tenant_id=tenant_id,
            provider=EhrProvider(result.provider).value,
            direction=SyncDirection(result.direction).value,
            resource_type=ResourceType(result.resource_type).value,
            patient_id=result.patient_id,
            external_id=result.external_id,
            status=SyncStatus(result.status).value,
            detail=result.detail,
        )
    except DatabaseError:
        logger.exception("[ehr-sync] 同步日志写入失败: %s", result)


def _record(result, tenant_id):
    log_sync(result, tenant_id)
    logger.info(
        "[ehr-sync] %s %s %s patient=%s external=%s → %s",
        result.provider.value, result.direction.value, result.resource_type.value,
        result.patient_id, result.external_id, result.status.value,
    )
    return result


def get_sync_logs(tenant_id=None, limit=50, offset=0):
    """按创建时间倒序返回同步日志；给了 tenant_id 才按租户过滤。"""
    logs = SyncLog.objects.order_by('-created_at', '-id')
    if tenant_id:
        logs = logs.filter(tenant_id=tenant_id)
    return list(logs[offset:offset + limit])


# ── 映射表 ─────────────────────────────────────────────────────────────────

def get_mapping(patient_id, provider, tenant_id):
    """内部 patient_id → external_id；没有映射返回 None。"""
    return (
        PatientMapping.objects
        .filter(tenant_id=tenant_id, provider=EhrProvider(provider).value, patient_id=patient_id)
        .values_list('external_id', flat=True)
        .first()
    )


def get_mapping_by_external_id(external_id, provider, tenant_id):
    """external_id → 内部 patient_id；没有映射返回 None。"""
    return (
        PatientMapping.objects
        .filter(tenant_id=tenant_id, provider=EhrProvider(provider).value, external_id=external_id)
        .values_list('patient_id', flat=True)
        .first()
    )


def upsert_mapping(patient_id, external_id, provider, tenant_id):
    """
    按 (tenant, provider, patient_id) 登记 / 更新映射，刷新 last_synced_at。

    若 external_id 已被别的患者占用，唯一约束触发 IntegrityError，
    由调用方转成 status="error"，保证 1:1 不被破坏。
    """
    with transaction.atomic():
        mapping, _ = PatientMapping.objects.update_or_create(
            tenant_id=tenant_id,
            provider=EhrProvider(provider).value,
            patient_id=patient_id,
            defaults={'external_id': external_id, 'last_synced_at': timezone.now()},
        )
    return mapping


def _get_patient(patient_id, tenant_id):
    return Patient.objects.filter(patient_id=patient_id, tenant_id=tenant_id).first()


def _result(adapter, direction, resource_type, status, **kwargs):
    return SyncResult(
        provider=adapter.provider,
        direction=direction,
        resource_type=resource_type,
        status=status,
        **kwargs,
    )


# ── 患者同步 ───────────────────────────────────────────────────────────────

def push_patient(patient_id, adapter, tenant_id):
    """
    内部患者 → 外部病历。

    已有映射时把 external_id 强制写回 EhrPatient，保证外部侧是「更新」而不是「新建」，
    同一患者在同一 provider 下最多只有一条外部记录。
    """
    def result(status, **kwargs):
        return _result(adapter, SyncDirection.PUSH, ResourceType.PATIENT, status,
                       patient_id=patient_id, **kwargs)

    try:
        patient = _get_patient(patient_id, tenant_id)
        if patient is None:
            return _record(result(SyncStatus.SKIPPED, detail='Patient not found.'), tenant_id)

        # 最新问诊只用来补空字段
        latest_intake = patient.intakes.order_by('-created_at', '-id').first()
        ehr_patient = to_ehr_patient(patient, latest_intake)

        existing_external_id = get_mapping(patient_id, adapter.provider, tenant_id)
        if existing_external_id:
            ehr_patient.external_id = existing_external_id

        external_id = adapter.push_patient(ehr_patient).external_id
        if not external_id:
            raise ValueError(f"{adapter.provider.value} adapter returned no external id.")

        upsert_mapping(patient_id, external_id, adapter.provider, tenant_id)
        outcome = result(
            SyncStatus.SUCCESS,
            external_id=external_id,
            detail=f"Pushed to external EHR (external id: {external_id}).",
        )
    except Exception as exc:
        logger.warning("[ehr-sync] push_patient(%s) 失败: %s", patient_id, exc)
        outcome = result(SyncStatus.ERROR, detail=str(exc))

    return _record(outcome, tenant_id)


def pull_patient(external_id, adapter, tenant_id):
    """
    外部病历 → 内部患者。

    只按 external_id 精确对应，不做姓名 / 生日的模糊匹配：
      - 有映射 → 更新已映射的内部患者
      - 无映射 → 以 EHR_{provider}_{external_id} 作为新 patient_id 登记
    """
    def result(status, **kwargs):
        return _result(adapter, SyncDirection.PULL, ResourceType.PATIENT, status,
                       external_id=external_id, **kwargs)

    try:
        remote = adapter.get_patient(external_id)
        if remote is None:
            return _record(
                result(SyncStatus.SKIPPED, detail='Patient not found in external EHR.'),
                tenant_id,
            )

        updates = from_ehr_patient(remote)

        with transaction.atomic():
            patient_id = get_mapping_by_external_id(external_id, adapter.provider, tenant_id)
            if patient_id:
                updated = Patient.objects.filter(patient_id=patient_id, tenant_id=tenant_id).update(
                    **updates, updated_at=timezone.now(),
                )
                if not updated:
                    # 映射还在但内部患者已被删除
                    return _record(
                        result(SyncStatus.SKIPPED, patient_id=patient_id,
                               detail='Mapped patient not found.'),
                        tenant_id,
                    )
                detail = 'Updated existing patient.'
            else:
                patient_id = f"EHR_{adapter.provider.value}_{external_id}"
                # patient_id 是全局主键：别的租户已占用时不能改写那一行
                owner = (
                    Patient.objects.filter(patient_id=patient_id)
                    .values_list('tenant_id', flat=True)
                    .first()
                )
                if owner is not None and owner != tenant_id:
                    raise BlockError(
                        f"Patient id {patient_id} is already used by another tenant.",
                        code='PATIENT_ID_CONFLICT',
                    )
                if owner is None:
                    Patient.objects.create(patient_id=patient_id, tenant_id=tenant_id, **updates)
                    detail = 'Registered as new patient.'
                else:
                    Patient.objects.filter(patient_id=patient_id, tenant_id=tenant_id).update(
                        **updates, updated_at=timezone.now(),
                    )
                    detail = 'Updated existing patient.'
            upsert_mapping(patient_id, external_id, adapter.provider, tenant_id)

        outcome = result(SyncStatus.SUCCESS, patient_id=patient_id, detail=detail)
    except Exception as exc:
        logger.warning("[ehr-sync] pull_patient(%s) 失败: %s", external_id, exc)
        outcome = result(SyncStatus.ERROR, detail=str(exc))

    return _record(outcome, tenant_id)


# ── 病历同步 ───────────────────────────────────────────────────────────────

def push_karte(patient_id, adapter, tenant_id):
    """
    把 note 非空的问诊逐条推送到外部，每条一次外部调用。

    外部侧只建不改，重复调用会产生重复病历（已知的不对称，见 DESIGN.md）。
    """
    def result(status, **kwargs):
        return _result(adapter, SyncDirection.PUSH, ResourceType.KARTE, status,
                       patient_id=patient_id, **kwargs)

    try:
        patient = _get_patient(patient_id, tenant_id)
        if patient is None:
            return _record(result(SyncStatus.SKIPPED, detail='Patient not found.'), tenant_id)

        external_id = get_mapping(patient_id, adapter.provider, tenant_id)
        if not external_id:
            return _record(
                result(
                    SyncStatus.SKIPPED,
                    detail='No external id mapping for this patient. Sync the patient first.',
                ),
                tenant_id,
            )

        intakes = patient.intakes.filter(note__isnull=False).order_by('-created_at', '-id')
        pushed = 0
        for intake in intakes:
            karte = to_ehr_karte(intake, patient)
            karte.patient_external_id = external_id
            adapter.push_karte(karte)
            pushed += 1

        outcome = result(
            SyncStatus.SUCCESS,
            external_id=external_id,
            detail=f"Pushed {pushed} karte(s).",
        )
    except Exception as exc:
        logger.warning("[ehr-sync] push_karte(%s) 失败: %s", patient_id, exc)
        outcome = result(SyncStatus.ERROR, detail=str(exc))

    return _record(outcome, tenant_id)


def _karte_created_at(karte_date):
    try:
        day = date.fromisoformat(karte_date)
    except (TypeError, ValueError):
        return timezone.now()
    return timezone.make_aware(datetime.combine(day, time.min))


def pull_karte(patient_id, adapter, tenant_id):
    """
    外部病历 → intake.note。

    插入前按 (patient_id, note) 精确查重，这是病历导入唯一的写侧幂等保障。
    """
    def result(status, **kwargs):
        return _result(adapter, SyncDirection.PULL, ResourceType.KARTE, status,
                       patient_id=patient_id, **kwargs)

    try:
        external_id = get_mapping(patient_id, adapter.provider, tenant_id)
        if not external_id:
            return _record(
                result(SyncStatus.SKIPPED, detail='No external id mapping for this patient.'),
                tenant_id,
            )

        patient = _get_patient(patient_id, tenant_id)
        if patient is None:
            return _record(
                result(SyncStatus.SKIPPED, external_id=external_id, detail='Patient not found.'),
                tenant_id,
            )

        kartes = adapter.get_karte_list(external_id)
        if not kartes:
            return _record(
                result(SyncStatus.SKIPPED, external_id=external_id,
                       detail='No kartes found in external EHR.'),
                tenant_id,
            )

        imported = 0
        for karte in kartes:
            note = from_ehr_karte(karte)['note']
            if not note:
                continue
            if Intake.objects.filter(patient_id=patient_id, note=note).exists():
                continue
            Intake.objects.create(
                patient=patient,
                tenant_id=tenant_id,
                note=note,
                status=IMPORTED_INTAKE_STATUS,
                created_at=_karte_created_at(karte.date),
            )
            imported += 1

        outcome = result(
            SyncStatus.SUCCESS,
            external_id=external_id,
            detail=f"Imported {imported} karte(s), skipped {len(kartes) - imported}.",
        )
    except Exception as exc:
        logger.warning("[ehr-sync] pull_karte(%s) 失败: %s", patient_id, exc)
        outcome = result(SyncStatus.ERROR, detail=str(exc))

    return _record(outcome, tenant_id)


# ── 批量同步 ───────────────────────────────────────────────────────────────

def _chunks(items, size):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def sync_batch(patient_ids, direction, adapter, tenant_id):
    """
    按 BATCH_SIZE 分批、严格串行地同步多个患者。

    pull 方向需要先从映射表查出 external_id；从未映射过的患者无法只凭内部 ID 拉取，
    直接记为 skipped，不去外部猜测对应关系。
    """
    direction = SyncDirection(direction)
    patient_ids = list(patient_ids)
    results = []

    for batch_no, batch in enumerate(_chunks(patient_ids, BATCH_SIZE), start=1):
        logger.info("[ehr-sync] batch %d: %d 件 (%s)", batch_no, len(batch), direction.value)
        for patient_id in batch:
            if direction is SyncDirection.PUSH:
                results.append(push_patient(patient_id, adapter, tenant_id))
                continue

            external_id = get_mapping(patient_id, adapter.provider, tenant_id)
            if external_id:
                results.append(pull_patient(external_id, adapter, tenant_id))
            else:
                results.append(_record(
                    _result(
                        adapter, SyncDirection.PULL, ResourceType.PATIENT, SyncStatus.SKIPPED,
                        patient_id=patient_id,
                        detail='No external id mapping; a never-synced patient cannot be pulled.',
                    ),
                    tenant_id,
                ))

    return results


# ── CSV 导入 / 导出 ────────────────────────────────────────────────────────

def import_csv(csv_text, resource, tenant_id):
    """
    载入 CSV 并拉取到内部。

    patient: CSV 里每个患者走一次 pull_patient
    karte:   按 CSV 患者ID 分组，只处理已有 CSV 映射的患者，其余记为 skipped
    """
    resource = ResourceType(resource)
    adapter = CsvAdapter()

    if resource is ResourceType.PATIENT:
        adapter.load_patients(csv_text)
        return [
            pull_patient(p.external_id, adapter, tenant_id)
            for p in adapter.search_patients()
        ]

    adapter.load_kartes(csv_text)
    external_ids = list(dict.fromkeys(
        k.patient_external_id for k in parse_karte_csv(csv_text)
    ))
    results = []
    for external_id in external_ids:
        patient_id = get_mapping_by_external_id(external_id, adapter.provider, tenant_id)
        if patient_id:
            results.append(pull_karte(patient_id, adapter, tenant_id))
        else:
            results.append(_record(
                _result(
                    adapter, SyncDirection.PULL, ResourceType.KARTE, SyncStatus.SKIPPED,
                    external_id=external_id,
                    detail='No patient mapped to this CSV patient id. Import patients first.',
                ),
                tenant_id,
            ))
    return results


def export_csv(resource, tenant_id, patient_ids=None):
    """
    把租户患者（及其病历）推送到一个新的 CsvAdapter，返回生成的 CSV 文本。
    patient_ids 为 None 时导出该租户全部患者。
    """
    resource = ResourceType(resource)
    if patient_ids is None:
        patient_ids = list(
            Patient.objects.filter(tenant_id=tenant_id)
            .order_by('patient_id')
            .values_list('patient_id', flat=True)
        )

    adapter = CsvAdapter()
    sync_batch(patient_ids, SyncDirection.PUSH, adapter, tenant_id)

    if resource is ResourceType.PATIENT:
        return adapter.export_patient_csv()

    for patient_id in patient_ids:
        push_karte(patient_id, adapter, tenant_id)
    return adapter.export_karte_csv()
