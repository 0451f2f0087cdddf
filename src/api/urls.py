"""Main API URL router for /api/v1/."""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from api.v1 import views as v1_views

router = DefaultRouter()
router.register(r'targets', v1_views.TargetViewSet, basename='target')
router.register(r'suppliers', v1_views.SupplierViewSet, basename='supplier')


app_name = 'api'
urlpatterns = [
    path('', include(router.urls)),
    path('reports/pipeline-summary/', v1_views.PipelineSummaryView.as_view(), name='pipeline-summary'),
    path('lookups/autocomplete/', v1_views.AutocompleteView.as_view(), name='autocomplete'),
]
