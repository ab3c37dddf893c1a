from django.urls import path
from . import views

urlpatterns = [
    path('', views.fundraisers, name='fundraiser-list'),
    path('<int:fundraiser_id>/', views.fundraiser_detail, name='fundraiser-detail'),
    path('<int:fundraiser_id>/donate/', views.donate, name='fundraiser-donate'),
    path('<int:fundraiser_id>/donations/', views.donations, name='fundraiser-donations'),
]
