from django.urls import path
from . import views

app_name = 'treatments'

urlpatterns = [
    path('', views.TreatmentListView.as_view(), name='treatment_list'),
    path('create/', views.TreatmentCreateView.as_view(), name='treatment_create'),
    path('<int:pk>/edit/', views.TreatmentUpdateView.as_view(), name='treatment_update'),
    path('<int:pk>/delete/', views.deactivate_treatment, name='treatment_delete'),

    path('api/options/', views.treatment_options_api, name='treatment_options'),
]
