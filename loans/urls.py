from django.urls import path

from . import views

app_name = 'loans'

urlpatterns = [
    path('loan-requests', views.loan_create, name='create'),
    path('loan-requests/<str:pk>', views.loan_detail, name='detail'),
    path('loan-requests/<str:pk>/approve', views.loan_approve, name='approve'),
    path('loan-requests/<str:pk>/reject', views.loan_reject, name='reject'),
    path('loan-requests/<str:pk>/return', views.loan_return, name='return'),
    path('returns/<str:pk>', views.return_detail, name='return_detail'),
    path('returns/<str:pk>/verify', views.return_verify, name='verify'),
]
