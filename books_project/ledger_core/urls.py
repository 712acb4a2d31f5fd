from django.urls import path

from . import views

# numeric voucher routes first: <slug> would also match an id
urlpatterns = [
    path("vouchers/<int:voucher_id>/", views.voucher_detail_view, name="voucher-detail"),
    path("vouchers/<int:voucher_id>/post/", views.post_voucher_view, name="voucher-post"),
    path("vouchers/<int:voucher_id>/reverse/", views.reverse_voucher_view, name="voucher-reverse"),
    path("vouchers/<int:voucher_id>/cancel/", views.cancel_voucher_view, name="voucher-cancel"),
    path("vouchers/<slug:doc_slug>/", views.create_voucher_view, name="voucher-create"),
    path("vouchers/<slug:doc_slug>/post/", views.post_new_voucher_view, name="voucher-create-post"),
    path("balances/", views.balances_view, name="balances"),
    path("reports/trial-balance/", views.trial_balance_view, name="trial-balance"),
    path("reports/balance-sheet/", views.balance_sheet_view, name="balance-sheet"),
    path("reports/profit-and-loss/", views.profit_and_loss_view, name="profit-and-loss"),
    path("reports/cash-flow/", views.cash_flow_view, name="cash-flow"),
]
