from django.urls import path
from . import views

app_name = 'crm'

urlpatterns = [
    path('sync/', views.manual_sync, name='manual_sync'),
    path('extraction/trigger/', views.trigger_category_extraction, name='trigger_extraction'),
    path('budget-index/', views.reconcile_budget_index, name='reconcile_budget_index'),
    path('runs/', views.CrmSyncRunListView.as_view(), name='sync_runs'),
    path('runs/<int:pk>/', views.CrmSyncRunDetailView.as_view(), name='sync_run_detail'),
]
