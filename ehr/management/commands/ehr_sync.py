"""
命令行同步入口：

  python manage.py ehr_sync --tenant clinic-a --test-connection
  python manage.py ehr_sync --tenant clinic-a P001 P002
  python manage.py ehr_sync --tenant clinic-a --direction pull --all
  python manage.py ehr_sync --tenant clinic-a --resource karte P001
"""

from collections import Counter

from django.core.management.base import BaseCommand, CommandError

from ehr import services
from ehr.adapters import ResourceType, SyncDirection, SyncStatus, create_adapter
from ehr.models import Patient


class Command(BaseCommand):
    help = 'Sync patients / kartes between internal storage and the tenant EHR'

    def add_arguments(self, parser):
        parser.add_argument('patient_ids', nargs='*', help='Internal patient ids to sync')
        parser.add_argument('--tenant', required=True, help='Tenant id')
        parser.add_argument(
            '--direction',
            choices=[d.value for d in SyncDirection],
            default=SyncDirection.PUSH.value,
        )
        parser.add_argument(
            '--resource',
            choices=[r.value for r in ResourceType],
            default=ResourceType.PATIENT.value,
        )
        parser.add_argument(
            '--all',
            action='store_true',
            help="Sync every patient of the tenant",
        )
        parser.add_argument(
            '--test-connection',
            action='store_true',
            help='Only check connectivity to the EHR',
        )

    def handle(self, *args, **options):
        tenant_id = options['tenant']
        adapter = create_adapter(tenant_id)
        if adapter is None:
            raise CommandError(f"EHR integration is not configured for tenant {tenant_id!r}.")

        if options['test_connection']:
            result = adapter.test_connection()
            style = self.style.SUCCESS if result.ok else self.style.ERROR
            self.stdout.write(style(f"[{adapter.provider.value}] {result.message}"))
            return

        patient_ids = options['patient_ids']
        if options['all']:
            patient_ids = list(
                Patient.objects.filter(tenant_id=tenant_id)
                .order_by('patient_id')
                .values_list('patient_id', flat=True)
            )
        if not patient_ids:
            raise CommandError('Give patient ids or --all.')

        direction = SyncDirection(options['direction'])
        resource = ResourceType(options['resource'])
        self.stdout.write(
            f"Syncing {len(patient_ids)} patient(s): "
            f"{adapter.provider.value} {direction.value} {resource.value}"
        )

        if resource is ResourceType.PATIENT:
            results = services.sync_batch(patient_ids, direction, adapter, tenant_id)
        else:
            operation = services.push_karte if direction is SyncDirection.PUSH else services.pull_karte
            results = [operation(pid, adapter, tenant_id) for pid in patient_ids]

        for result in results:
            self.stdout.write(self._format(result))

        counts = Counter(r.status.value for r in results)
        summary = (
            f"success={counts['success']} error={counts['error']} skipped={counts['skipped']}"
        )
        if counts['error']:
            self.stdout.write(self.style.WARNING(summary))
        else:
            self.stdout.write(self.style.SUCCESS(summary))

    def _format(self, result):
        line = (
            f"  {result.status.value:<7} patient={result.patient_id or '-'} "
            f"external={result.external_id or '-'}"
        )
        if result.detail:
            line += f"  {result.detail}"
        if result.status is SyncStatus.ERROR:
            return self.style.ERROR(line)
        return line
