from django.urls import include, path

urlpatterns = [
    path("api/<int:tenant_id>/", include("ledger_core.urls")),
]
