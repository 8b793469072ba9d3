from django.urls import path

from . import views

app_name = 'procurement'

urlpatterns = [
    path('requests', views.request_create, name='create'),
    path('requests/<str:pk>', views.request_detail, name='detail'),
    path('requests/<str:pk>/approve', views.request_approve, name='approve'),
    path('requests/<str:pk>/reject', views.request_reject, name='reject'),
    path('requests/<str:pk>/cancel', views.request_cancel, name='cancel'),
    path('requests/<str:pk>/submit-final', views.request_submit_final, name='submit_final'),
    path('requests/<str:pk>/arrive', views.request_arrive, name='arrive'),
    path('requests/<str:pk>/handover', views.request_handover, name='handover'),
    path('requests/<str:pk>/register-assets', views.request_register_assets, name='register_assets'),
]
