from django.urls import path
from . import views

urlpatterns = [
    # Loan requests
    path('', views.loans, name='loans'),
    path('user/<int:user_id>/', views.user_loans, name='user-loans'),
    path('<int:loan_id>/', views.loan_detail, name='loan-detail'),

    # Funding
    path('<int:loan_id>/fund/', views.fund_loan, name='fund-loan'),
]
