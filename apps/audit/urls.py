from django.urls import path

from apps.audit.views import AuditActorListView, AuditEntryListView

urlpatterns = [
    path("", AuditEntryListView.as_view(), name="audit-entry-list"),
    path("actors/", AuditActorListView.as_view(), name="audit-actor-list"),
]
