from django.db import models
from django.utils import timezone

PROVIDER_CHOICES = [
    ('orca', 'ORCA'),
    ('csv', 'CSV'),
    ('fhir', 'FHIR R4'),
]


class Patient(models.Model):
    patient_id = models.CharField(primary_key=True, max_length=100)
    tenant_id = models.CharField(max_length=100, blank=True, default='', db_index=True)
    name = models.CharField(max_length=200, blank=True, default='')
    name_kana = models.CharField(max_length=200, blank=True, null=True)
    sex = models.CharField(max_length=20, blank=True, null=True)
    birthday = models.CharField(max_length=10, blank=True, null=True)  # YYYY-MM-DD
    tel = models.CharField(max_length=30, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patients'


class Intake(models.Model):
    """问诊 / 病历记录。note 非空的行视为一条病历（karte）。"""

    patient = models.ForeignKey(
        Patient,
        on_delete=models.CASCADE,
        related_name='intakes',
        db_column='patient_id',
    )
    tenant_id = models.CharField(max_length=100, blank=True, default='', db_index=True)
    note = models.TextField(blank=True, null=True)
    status = models.CharField(max_length=20, blank=True, null=True)
    answers = models.JSONField(default=dict, blank=True)
    # 从外部病历导入时用诊察日覆盖，所以不用 auto_now_add
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'intake'


class PatientMapping(models.Model):
    """
    内部患者 ↔ 外部病历患者 的 1:1 对应表。

    (tenant, provider, external_id) 与 (tenant, provider, patient_id) 均唯一。
    首次 push / pull 成功时创建，之后每次同步只刷新 last_synced_at，不自动删除。
    patient_id 故意不用外键：删除内部患者时映射保留。
    """

    tenant_id = models.CharField(max_length=100, blank=True, default='')
    provider = models.CharField(max_length=10, choices=PROVIDER_CHOICES)
    external_id = models.CharField(max_length=100)
    patient_id = models.CharField(max_length=100)
    last_synced_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'ehr_patient_mappings'
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'provider', 'external_id'],
                name='uniq_ehr_mapping_external_id',
            ),
            models.UniqueConstraint(
                fields=['tenant_id', 'provider', 'patient_id'],
                name='uniq_ehr_mapping_patient_id',
            ),
        ]


class SyncLog(models.Model):
    STATUS_CHOICES = [
        ('success', 'Success'),
        ('error', 'Error'),
        ('skipped', 'Skipped'),
    ]

    tenant_id = models.CharField(max_length=100, blank=True, default='', db_index=True)
    provider = models.CharField(max_length=10, choices=PROVIDER_CHOICES)
    direction = models.CharField(max_length=10)
    resource_type = models.CharField(max_length=10)
    patient_id = models.CharField(max_length=100, blank=True, null=True)
    external_id = models.CharField(max_length=100, blank=True, null=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES)
    detail = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'ehr_sync_logs'


class TenantSetting(models.Model):
    """租户级 key/value 设置，电子病历相关的都在 category='ehr' 下。"""

    tenant_id = models.CharField(max_length=100, blank=True, default='')
    category = models.CharField(max_length=50)
    key = models.CharField(max_length=100)
    value = models.TextField(blank=True, default='')
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'tenant_settings'
        constraints = [
            models.UniqueConstraint(
                fields=['tenant_id', 'category', 'key'],
                name='uniq_tenant_setting',
            ),
        ]
