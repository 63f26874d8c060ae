import pytest

from freshmarket.errors import InsufficientStockError
from freshmarket.models.order import Order, OrderStatus
from freshmarket.schemas.order import OrderCreatePayload
from freshmarket.services import catalog, orders as order_service
from freshmarket.utils.audit import history_of


def _cart(*lines, **address):
    return {
        "produits": [{"productId": pid, "quantite": qty} for pid, qty in lines],
        "adresseLivraison": {"ville": "Cotonou", "quartier": "Cadjehoun", "instructions": "Portail bleu", **address},
    }


@pytest.fixture
def tomatoes(make_product, supplier):
    return make_product(supplier, name="Tomates", price=500, quantity=10)


def test_create_order_example_scenario(client, auth, buyer, supplier, tomatoes, stock_of):
    resp = client.post("/orders", json=_cart((tomatoes.id, 3)), headers=auth(buyer))

    assert resp.status_code == 201, resp.text
    order = resp.json()
    assert order["sousTotal"] == 1500
    assert order["fraisLivraison"] == 1000
    assert order["total"] == 2500
    assert order["statut"] == "en_attente"
    assert order["paiement"]["statut"] == "en_attente"
    assert order["acheteur"]["id"] == buyer.id
    assert order["fournisseur"]["id"] == supplier.id
    assert order["produits"] == [
        {"productId": tomatoes.id, "nom": "Tomates", "prixUnitaire": 500, "quantite": 3, "total": 1500}
    ]
    assert [h["statut"] for h in order["historiqueStatuts"]] == ["en_attente"]
    assert stock_of(tomatoes.id) == 7


def test_total_uses_catalog_prices_and_merges_lines(client, auth, buyer, supplier, make_product, stock_of):
    a = make_product(supplier, name="Tomates", price=500, quantity=10)
    b = make_product(supplier, name="Piment", category="piment", price=250, quantity=5)

    payload = _cart((a.id, 1), (b.id, 2), (a.id, 2))
    # Client-side prices are not part of the contract and are ignored
    payload["produits"][0]["prixUnitaire"] = 1

    resp = client.post("/orders", json=payload, headers=auth(buyer))

    assert resp.status_code == 201, resp.text
    order = resp.json()
    assert len(order["produits"]) == 2
    assert order["total"] == sum(line["total"] for line in order["produits"]) + 1000
    assert order["total"] == 3 * 500 + 2 * 250 + 1000
    assert stock_of(a.id) == 7
    assert stock_of(b.id) == 3


def test_delivery_phone_defaults_to_buyer(client, auth, buyer, tomatoes):
    resp = client.post("/orders", json=_cart((tomatoes.id, 1)), headers=auth(buyer))
    assert resp.json()["adresseLivraison"]["telephone"] == buyer.phone


def test_empty_cart_rejected(client, auth, buyer):
    resp = client.post("/orders", json={"produits": []}, headers=auth(buyer))
    assert resp.status_code == 400


def test_unknown_product_is_404(client, auth, buyer):
    resp = client.post("/orders", json=_cart((9999, 1)), headers=auth(buyer))
    assert resp.status_code == 404


def test_unavailable_product_rejected(client, auth, buyer, supplier, make_product, stock_of):
    p = make_product(supplier, available=False)
    resp = client.post("/orders", json=_cart((p.id, 1)), headers=auth(buyer))
    assert resp.status_code == 400
    assert stock_of(p.id) == 10


def test_insufficient_stock_leaves_stock_untouched(client, db, auth, buyer, tomatoes, stock_of):
    resp = client.post("/orders", json=_cart((tomatoes.id, 11)), headers=auth(buyer))

    assert resp.status_code == 400
    assert "Insufficient stock" in resp.json()["detail"]
    assert stock_of(tomatoes.id) == 10
    assert db.query(Order).count() == 0


def test_mixed_suppliers_rejected(client, db, auth, buyer, supplier, make_user, make_product, stock_of):
    other = make_user("fournisseur")
    a = make_product(supplier, quantity=10)
    b = make_product(other, quantity=10)

    resp = client.post("/orders", json=_cart((a.id, 1), (b.id, 1)), headers=auth(buyer))

    assert resp.status_code == 400
    assert "same supplier" in resp.json()["detail"]
    assert stock_of(a.id) == 10
    assert stock_of(b.id) == 10
    assert db.query(Order).count() == 0


def test_only_buyers_can_order(client, auth, supplier, tomatoes):
    resp = client.post("/orders", json=_cart((tomatoes.id, 1)), headers=auth(supplier))
    assert resp.status_code == 403


def test_requires_authentication(client, tomatoes):
    resp = client.post("/orders", json=_cart((tomatoes.id, 1)))
    assert resp.status_code in (401, 403)


def test_failed_decrement_rolls_back_whole_order(db, buyer, supplier, make_product, stock_of, monkeypatch):
    a = make_product(supplier, quantity=10)
    b = make_product(supplier, name="Gombo", category="gombo", quantity=10)
    real_adjust = catalog.adjust_quantity

    # Simulate a concurrent order taking the last units of b between check and decrement
    def racing_adjust(session, product_id, delta, require_available=False):
        if product_id == b.id:
            return False
        return real_adjust(session, product_id, delta, require_available)

    monkeypatch.setattr(catalog, "adjust_quantity", racing_adjust)
    payload = OrderCreatePayload.model_validate(_cart((a.id, 2), (b.id, 2)))

    with pytest.raises(InsufficientStockError):
        order_service.create_order(db, buyer, payload)

    assert stock_of(a.id) == 10
    assert stock_of(b.id) == 10
    assert db.query(Order).count() == 0


def test_order_visible_to_its_buyer_and_supplier_only(client, auth, buyer, supplier, make_user, tomatoes):
    order_id = client.post("/orders", json=_cart((tomatoes.id, 1)), headers=auth(buyer)).json()["id"]

    assert client.get(f"/orders/{order_id}", headers=auth(buyer)).status_code == 200
    assert client.get(f"/orders/{order_id}", headers=auth(supplier)).status_code == 200

    for stranger in (make_user("acheteur"), make_user("fournisseur")):
        resp = client.get(f"/orders/{order_id}", headers=auth(stranger))
        assert resp.status_code == 403
        assert "produits" not in resp.json()


def test_missing_order_is_404(client, auth, buyer):
    assert client.get("/orders/424242", headers=auth(buyer)).status_code == 404


def test_lists_are_per_role_newest_first(client, auth, buyer, supplier, make_user, tomatoes):
    first = client.post("/orders", json=_cart((tomatoes.id, 1)), headers=auth(buyer)).json()["id"]
    second = client.post("/orders", json=_cart((tomatoes.id, 2)), headers=auth(buyer)).json()["id"]
    other_buyer = make_user("acheteur")
    client.post("/orders", json=_cart((tomatoes.id, 1)), headers=auth(other_buyer))

    mine = client.get("/orders/acheteur", headers=auth(buyer)).json()
    assert [o["id"] for o in mine["items"]] == [second, first]
    assert mine["total"] == 2

    received = client.get("/orders/fournisseur", headers=auth(supplier)).json()
    assert received["total"] == 3

    assert client.get("/orders/fournisseur", headers=auth(buyer)).status_code == 403


def test_cancel_pending_restores_stock(client, auth, buyer, tomatoes, stock_of):
    order_id = client.post("/orders", json=_cart((tomatoes.id, 3)), headers=auth(buyer)).json()["id"]
    assert stock_of(tomatoes.id) == 7

    resp = client.post(f"/orders/{order_id}/annuler", headers=auth(buyer))

    assert resp.status_code == 200, resp.text
    assert resp.json()["statut"] == "annulee"
    assert stock_of(tomatoes.id) == 10

    again = client.post(f"/orders/{order_id}/annuler", headers=auth(buyer))
    assert again.status_code == 400
    assert stock_of(tomatoes.id) == 10


def test_cancel_paid_order_restores_stock(client, auth, buyer, supplier, tomatoes, stock_of):
    order_id = client.post("/orders", json=_cart((tomatoes.id, 4)), headers=auth(buyer)).json()["id"]
    client.put(f"/orders/{order_id}/statut", json={"statut": "payee"}, headers=auth(supplier))

    resp = client.post(f"/orders/{order_id}/annuler", headers=auth(buyer))

    assert resp.status_code == 200
    assert stock_of(tomatoes.id) == 10


def test_cannot_cancel_shipped_order(client, auth, buyer, supplier, tomatoes, stock_of):
    order_id = client.post("/orders", json=_cart((tomatoes.id, 2)), headers=auth(buyer)).json()["id"]
    for status in ("payee", "en_preparation", "expediee"):
        resp = client.put(f"/orders/{order_id}/statut", json={"statut": status}, headers=auth(supplier))
        assert resp.status_code == 200, resp.text

    resp = client.post(f"/orders/{order_id}/annuler", headers=auth(buyer))

    assert resp.status_code == 400
    assert stock_of(tomatoes.id) == 8


def test_only_owner_buyer_can_cancel(client, auth, buyer, make_user, tomatoes):
    order_id = client.post("/orders", json=_cart((tomatoes.id, 1)), headers=auth(buyer)).json()["id"]
    resp = client.post(f"/orders/{order_id}/annuler", headers=auth(make_user("acheteur")))
    assert resp.status_code == 403


def test_supplier_walks_the_lifecycle_with_history(client, auth, buyer, supplier, tomatoes):
    order_id = client.post("/orders", json=_cart((tomatoes.id, 1)), headers=auth(buyer)).json()["id"]

    for status in ("payee", "en_preparation", "expediee", "livree"):
        resp = client.put(f"/orders/{order_id}/statut",
                          json={"statut": status, "commentaire": f"-> {status}"}, headers=auth(supplier))
        assert resp.status_code == 200, resp.text

    history = resp.json()["historiqueStatuts"]
    assert [h["statut"] for h in history] == ["en_attente", "payee", "en_preparation", "expediee", "livree"]
    assert history[-1]["commentaire"] == "-> livree"


def test_supplier_cannot_skip_states(client, auth, buyer, supplier, tomatoes):
    order_id = client.post("/orders", json=_cart((tomatoes.id, 1)), headers=auth(buyer)).json()["id"]

    resp = client.put(f"/orders/{order_id}/statut", json={"statut": "expediee"}, headers=auth(supplier))

    assert resp.status_code == 409
    assert client.get(f"/orders/{order_id}", headers=auth(buyer)).json()["statut"] == "en_attente"


def test_supplier_cannot_leave_delivered(client, db, auth, buyer, supplier, tomatoes):
    order_id = client.post("/orders", json=_cart((tomatoes.id, 1)), headers=auth(buyer)).json()["id"]
    db.query(Order).filter(Order.id == order_id).update({Order.status: OrderStatus.DELIVERED.value})
    db.commit()

    resp = client.put(f"/orders/{order_id}/statut", json={"statut": "en_preparation"}, headers=auth(supplier))
    assert resp.status_code == 409


def test_unknown_status_value_is_rejected(client, auth, buyer, supplier, tomatoes):
    order_id = client.post("/orders", json=_cart((tomatoes.id, 1)), headers=auth(buyer)).json()["id"]
    resp = client.put(f"/orders/{order_id}/statut", json={"statut": "perdue"}, headers=auth(supplier))
    assert resp.status_code == 422


def test_supplier_cancel_restores_stock(client, auth, buyer, supplier, tomatoes, stock_of):
    order_id = client.post("/orders", json=_cart((tomatoes.id, 5)), headers=auth(buyer)).json()["id"]

    resp = client.put(f"/orders/{order_id}/statut",
                      json={"statut": "annulee", "commentaire": "Rupture"}, headers=auth(supplier))

    assert resp.status_code == 200
    last = resp.json()["historiqueStatuts"][-1]
    assert (last["statut"], last["commentaire"]) == ("annulee", "Rupture")
    assert stock_of(tomatoes.id) == 10


def test_other_supplier_cannot_update(client, auth, buyer, make_user, tomatoes):
    order_id = client.post("/orders", json=_cart((tomatoes.id, 1)), headers=auth(buyer)).json()["id"]
    resp = client.put(f"/orders/{order_id}/statut", json={"statut": "payee"},
                      headers=auth(make_user("fournisseur")))
    assert resp.status_code == 403


def test_rating_only_after_delivery(client, db, auth, buyer, tomatoes):
    order_id = client.post("/orders", json=_cart((tomatoes.id, 1)), headers=auth(buyer)).json()["id"]

    early = client.post(f"/orders/{order_id}/evaluer", json={"note": 5}, headers=auth(buyer))
    assert early.status_code == 409

    db.query(Order).filter(Order.id == order_id).update({Order.status: OrderStatus.DELIVERED.value})
    db.commit()

    resp = client.post(f"/orders/{order_id}/evaluer",
                       json={"note": 4, "commentaire": "Très frais"}, headers=auth(buyer))
    assert resp.status_code == 200
    assert resp.json()["noteAcheteur"] == 4
    assert resp.json()["commentaireAcheteur"] == "Très frais"

    assert client.post(f"/orders/{order_id}/evaluer", json={"note": 6}, headers=auth(buyer)).status_code == 422


def test_order_actions_are_audited(client, db, auth, buyer, tomatoes):
    order_id = client.post("/orders", json=_cart((tomatoes.id, 1)), headers=auth(buyer)).json()["id"]
    client.post(f"/orders/{order_id}/annuler", headers=auth(buyer))

    entries = history_of(db, "orders", order_id)

    assert [e.action for e in entries] == ["ORDER_CREATE", "ORDER_CANCEL"]
    assert {e.user_id for e in entries} == {buyer.id}
