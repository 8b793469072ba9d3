from django.urls import path

from . import views

app_name = 'inventory'

urlpatterns = [
    path('stock/movements', views.movement_create, name='movement_create'),
    path('stock/movements/<int:pk>/reverse', views.movement_reverse, name='movement_reverse'),
    path('stock/summary', views.stock_summary, name='summary'),
]
