from django.urls import path
from .views import (
    CsvExportView,
    CsvImportView,
    PatientSearchView,
    SyncLogListView,
    SyncView,
    TestConnectionView,
)

urlpatterns = [
    path('ehr/test-connection/', TestConnectionView.as_view(), name='ehr-test-connection'),
    path('ehr/patients/', PatientSearchView.as_view(), name='ehr-patients'),
    path('ehr/sync/', SyncView.as_view(), name='ehr-sync'),
    path('ehr/logs/', SyncLogListView.as_view(), name='ehr-logs'),
    path('ehr/import-csv/', CsvImportView.as_view(), name='ehr-import-csv'),
    path('ehr/export-csv/', CsvExportView.as_view(), name='ehr-export-csv'),
]
