import functools
import json
import logging

from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.http import Http404, JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from .exceptions import ConflictError, LedgerError
from .models import Company, User, Voucher
from .services import (balance_sheet, balances, cancel_draft, cash_flow,
                       create_draft, delete_draft, post_document,
                       post_voucher, profit_and_loss, reverse_voucher,
                       trial_balance, update_draft, windowed_balances)
from .services.validation import to_date

logger = logging.getLogger(__name__)

# URL slug -> document class
DOC_CLASS_SLUGS = {
    "journal": "JV",
    "credit-note": "CN",
    "expense": "EXP",
    "income": "RCT",
    "payment": "PV",
}


def _json(data, status=200):
    return JsonResponse(data, status=status, encoder=DjangoJSONEncoder, safe=False)


def _error(message, code, status):
    return _json({"success": False, "error": message, "code": code}, status=status)


def ledger_endpoint(view):
    """
    Map ledger errors to structured JSON responses. Services run in their own
    atomic blocks, so by the time an error reaches here nothing was written.
    """

    @functools.wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except Http404 as e:
            return _error(str(e) or "Not found", "not_found", 404)
        except ValidationError as e:
            return _error("; ".join(e.messages), "validation", 400)
        except ConflictError as e:
            return _error(str(e), e.code, 409)
        except LedgerError as e:
            return _error(str(e), e.code, 400)
        except Exception:
            logger.exception("Unexpected error in %s", view.__name__)
            return _error("Internal error", "internal", 500)

    return wrapper


def _payload(request):
    try:
        data = json.loads(request.body or b"{}")
    except (TypeError, ValueError):
        raise ValidationError("Request body must be valid JSON.")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def _company(tenant_id):
    return get_object_or_404(Company, pk=tenant_id)


def _user(payload):
    user_id = payload.get("userId")
    if user_id in (None, ""):
        return None
    return User.objects.filter(pk=user_id).first()


def _doc_class(slug):
    try:
        return DOC_CLASS_SLUGS[slug]
    except KeyError:
        raise Http404(f"Unknown document class '{slug}'")


def _voucher(company, voucher_id):
    return get_object_or_404(Voucher.objects.for_company(company), pk=voucher_id)


def _posting_response(result, status):
    return _json({
        "success": True,
        "documentId": result.document_id,
        "documentNumber": result.document_number,
        "ledgerLineIds": result.ledger_line_ids,
    }, status=status)


def _voucher_detail(voucher):
    return {
        "documentId": voucher.pk,
        "documentNumber": voucher.number,
        "documentClass": voucher.doc_class,
        "status": voucher.status,
        "date": voucher.entry_date,
        "narration": voucher.narration,
        "subtotal": voucher.subtotal,
        "discountTotal": voucher.discount_total,
        "taxTotal": voucher.tax_total,
        "totalAmount": voucher.total_amount,
        "reversalOf": voucher.reversal_of_id,
        "lines": [
            {
                "accountCode": line.account.code,
                "debit": line.debit,
                "credit": line.credit,
                "entryDate": line.entry_date,
            }
            for line in voucher.ledger_lines.select_related("account").order_by("id")
        ],
    }


# ---------- Documents ----------
@csrf_exempt
@require_http_methods(["POST"])
@ledger_endpoint
def create_voucher_view(request, tenant_id, doc_slug):
    company = _company(tenant_id)
    payload = _payload(request)
    voucher = create_draft(company, _doc_class(doc_slug), payload, user=_user(payload))
    return _json({
        "success": True,
        "documentId": voucher.pk,
        "documentNumber": voucher.number,
        "status": voucher.status,
    }, status=201)


@csrf_exempt
@require_http_methods(["POST"])
@ledger_endpoint
def post_new_voucher_view(request, tenant_id, doc_slug):
    company = _company(tenant_id)
    payload = _payload(request)
    result = post_document(company, _doc_class(doc_slug), payload, user=_user(payload))
    return _posting_response(result, 201)


@csrf_exempt
@require_http_methods(["GET", "PUT", "DELETE"])
@ledger_endpoint
def voucher_detail_view(request, tenant_id, voucher_id):
    voucher = _voucher(_company(tenant_id), voucher_id)
    if request.method == "GET":
        return _json({"success": True, **_voucher_detail(voucher)})
    if request.method == "PUT":
        payload = _payload(request)
        voucher = update_draft(voucher, payload, user=_user(payload))
        return _json({"success": True, "documentId": voucher.pk,
                      "documentNumber": voucher.number})
    number = delete_draft(voucher)
    return _json({"success": True, "documentId": voucher_id, "documentNumber": number})


@csrf_exempt
@require_http_methods(["POST"])
@ledger_endpoint
def post_voucher_view(request, tenant_id, voucher_id):
    voucher = _voucher(_company(tenant_id), voucher_id)
    payload = _payload(request)
    return _posting_response(post_voucher(voucher, user=_user(payload)), 200)


@csrf_exempt
@require_http_methods(["POST"])
@ledger_endpoint
def reverse_voucher_view(request, tenant_id, voucher_id):
    voucher = _voucher(_company(tenant_id), voucher_id)
    payload = _payload(request)
    entry_date = to_date(payload["date"]) if payload.get("date") else None
    result = reverse_voucher(voucher, user=_user(payload), entry_date=entry_date,
                             narration=payload.get("narration"))
    return _posting_response(result, 201)


@csrf_exempt
@require_http_methods(["POST"])
@ledger_endpoint
def cancel_voucher_view(request, tenant_id, voucher_id):
    voucher = _voucher(_company(tenant_id), voucher_id)
    voucher = cancel_draft(voucher, user=_user(_payload(request)))
    return _json({"success": True, "documentId": voucher.pk,
                  "documentNumber": voucher.number, "status": voucher.status})


# ---------- Balances & reports ----------
def _window(request):
    return to_date(request.GET.get("from"), "from"), to_date(request.GET.get("to"), "to")


@require_http_methods(["GET"])
@ledger_endpoint
def balances_view(request, tenant_id):
    company = _company(tenant_id)
    codes = request.GET.get("accounts")
    codes = [c for c in codes.split(",") if c] if codes else None

    if request.GET.get("from") or request.GET.get("to"):
        date_from, date_to = _window(request)
        rows = windowed_balances(company, date_from, date_to, account_codes=codes)
        return _json([
            {"accountCode": w.account_code, "openingBalance": w.opening_balance,
             "closingBalance": w.closing_balance}
            for w in rows
        ])

    as_of = to_date(request.GET["asOf"], "asOf") if request.GET.get("asOf") else None
    rows = balances(company, as_of, account_codes=codes)
    return _json([{"accountCode": b.account_code, "balance": b.balance} for b in rows])


@require_http_methods(["GET"])
@ledger_endpoint
def trial_balance_view(request, tenant_id):
    return _json(trial_balance(_company(tenant_id), *_window(request)))


@require_http_methods(["GET"])
@ledger_endpoint
def balance_sheet_view(request, tenant_id):
    as_of = to_date(request.GET.get("asOf"), "asOf")
    return _json(balance_sheet(_company(tenant_id), as_of))


@require_http_methods(["GET"])
@ledger_endpoint
def profit_and_loss_view(request, tenant_id):
    return _json(profit_and_loss(_company(tenant_id), *_window(request)))


@require_http_methods(["GET"])
@ledger_endpoint
def cash_flow_view(request, tenant_id):
    return _json(cash_flow(_company(tenant_id), *_window(request)))
