"""
BaseEhrAdapter — 所有电子病历 Adapter 的抽象基类。

目前只有三个实现（ORCA / FHIR / CSV），由 factory.py 按 EhrProvider 选择。
业务层（services.py）只依赖这里定义的六个方法，不知道背后是哪家系统。

失败约定：
  - 读方法（get_patient / search_patients / get_karte_list）失败时降级为 None / []
  - 写方法（push_patient / push_karte）失败时抛异常，由 services.py 统一兜底
"""

from abc import ABC, abstractmethod
from typing import ClassVar, Optional

from .types import ConnectionResult, EhrKarte, EhrPatient, EhrProvider, PushResult


class BaseEhrAdapter(ABC):

    # 子类声明自己对应的 provider（与 factory 的分支一致）
    provider: ClassVar[EhrProvider]

    @abstractmethod
    def test_connection(self) -> ConnectionResult:
        """连通性检查，返回 ok + 人类可读的 message。"""

    @abstractmethod
    def get_patient(self, external_id: str) -> Optional[EhrPatient]:
        """按外部 ID 取患者；不存在或任何失败都返回 None。"""

    @abstractmethod
    def search_patients(
        self,
        name: Optional[str] = None,
        tel: Optional[str] = None,
        birthday: Optional[str] = None,
    ) -> list[EhrPatient]:
        """按条件检索患者；失败返回 []。"""

    @abstractmethod
    def push_patient(self, patient: EhrPatient) -> PushResult:
        """
        登记 / 更新患者，返回外部系统认定的 external_id。

        patient.external_id 有值时语义是「更新」，否则「新建」（由各实现解释）。
        """

    @abstractmethod
    def get_karte_list(self, patient_external_id: str) -> list[EhrKarte]:
        """取某患者的全部病历；失败返回 []。"""

    @abstractmethod
    def push_karte(self, karte: EhrKarte) -> None:
        """
        新建一条病历。只建不改：重复调用会在外部系统产生重复记录。
        """
