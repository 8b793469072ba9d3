from django.urls import path

from . import views

app_name = 'assets'

urlpatterns = [
    path('assets/batch', views.asset_batch, name='batch'),
    path('assets/<str:pk>', views.asset_detail, name='detail'),
]
