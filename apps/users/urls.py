from django.urls import path
from . import views

urlpatterns = [
    path('register/', views.register, name='user-register'),
    path('login/', views.login, name='user-login'),
    path('profile/', views.profile, name='user-profile'),
    path('profile/update/', views.update_profile, name='user-profile-update'),
    path('verification/', views.submit_verification, name='verification-submit'),
    path('verification/status/', views.verification_status, name='verification-status'),
    path('verification/history/', views.verification_history, name='verification-history'),
    path('', views.users, name='user-list'),
    path('<int:user_id>/', views.delete_user, name='user-delete'),
    path('admin/<int:user_id>/', views.promote_user, name='user-promote'),
    path('admin/dashboard/', views.dashboard, name='admin-dashboard'),
    path('admin/verifications/', views.admin_verification_requests, name='admin-verification-list'),
    path('admin/verifications/<int:request_id>/<str:action>/', views.review_verification,
         name='admin-verification-review'),
]
