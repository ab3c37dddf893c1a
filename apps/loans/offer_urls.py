from django.urls import path
from . import views

urlpatterns = [
    path('', views.offers, name='offers'),
    path('my-offers/', views.my_offers, name='my-offers'),
    path('loan/<int:loan_id>/', views.loan_offers, name='loan-offers'),
    path('donor/<int:donor_id>/', views.donor_offers, name='donor-offers'),
    path('<int:offer_id>/accept/', views.accept_offer, name='accept-offer'),
    path('<int:offer_id>/reject/', views.reject_offer, name='reject-offer'),
]
