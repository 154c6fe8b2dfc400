# reports/urls.py
from django.urls import path
from . import views

app_name = 'reports'

urlpatterns = [
    path('', views.ReportsView.as_view(), name='dashboard'),
    path('api/charts/', views.chart_data_api, name='chart_data'),
]
