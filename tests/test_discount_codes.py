import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from decimal import Decimal

from sqlalchemy.orm import sessionmaker

from core.db import Base, build_engine
from core.errors import ErrorKind
from models.discount_code import DiscountCode
from models.enums import OrderSource, PlanType
from models.shop import Shop
from services import discount_codes
from services.checkout import CartItem, build_cart_lines, place_order
from services.discount_codes import apply_discount_code, get_discount_code_stats, validate
from tests.conftest import NOW


def _lines(db, shop, *items):
    return build_cart_lines(db, shop.id, list(items)).value


def _validate(db, shop, code, lines, source=OrderSource.ONLINE, customer_id=None):
    subtotal = sum(line.amount for line in lines)
    return validate(db, code, shop.id, source, customer_id, lines, subtotal)


class TestValidate:
    """Test cases for discount code validation"""

    def test_storewide_code(self, db, shop, catalog, make_code):
        """Test SAVE10 on two units of 100 gives 20 off and a 180 total"""
        make_code("SAVE10", 10, usage_limit=100, used_count=0)
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 2))

        result = _validate(db, shop, "SAVE10", lines)

        assert result.valid
        assert result.discount_amount == Decimal("20.00")
        assert result.order_total == Decimal("180.00")
        assert result.discount_code.code == "SAVE10"

    def test_code_is_case_insensitive(self, db, shop, catalog, make_code):
        """Test lookup upper-cases the entered code"""
        make_code("SAVE10", 10)
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        assert _validate(db, shop, " save10 ", lines).valid

    def test_unknown_code(self, db, shop, catalog):
        """Test an unknown code is rejected as not found"""
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        result = _validate(db, shop, "NOPE", lines)

        assert not result.valid
        assert result.error.kind == ErrorKind.NOT_FOUND
        assert result.error_message == "Invalid discount code"

    def test_inactive_code_is_unknown(self, db, shop, catalog, make_code):
        """Test an inactive code looks like an unknown one"""
        make_code("OFF", 10, is_active=False)
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        assert _validate(db, shop, "OFF", lines).error.kind == ErrorKind.NOT_FOUND

    def test_code_of_another_shop(self, db, shop, catalog):
        """Test codes are scoped to their shop"""
        other = Shop(name="Other", plan_type=PlanType.STANDARD.value)
        db.add(other)
        db.commit()
        db.add(DiscountCode(shop_id=other.id, code="THEIRS", percentage=50,
                            start_date=NOW - timedelta(days=1), end_date=NOW + timedelta(days=1)))
        db.commit()
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        assert _validate(db, shop, "THEIRS", lines).error.kind == ErrorKind.NOT_FOUND

    def test_not_yet_active(self, db, shop, catalog, make_code):
        """Test a code before its start date"""
        make_code("SOON", 10, start=NOW + timedelta(days=1), end=NOW + timedelta(days=2))
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        result = _validate(db, shop, "SOON", lines)

        assert result.error.kind == ErrorKind.WINDOW_CLOSED
        assert result.error_message == "This discount code is not yet active"

    def test_expired(self, db, shop, catalog, make_code):
        """Test a code after its end date"""
        make_code("GONE", 10, start=NOW - timedelta(days=5), end=NOW - timedelta(days=1))
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        result = _validate(db, shop, "GONE", lines)

        assert result.error.kind == ErrorKind.WINDOW_CLOSED
        assert result.error_message == "This discount code has expired"

    def test_expires_with_clock(self, db, shop, catalog, make_code, frozen_clock):
        """Test the same code turns invalid once the clock passes its end"""
        make_code("WEEK", 10, end=NOW + timedelta(days=7))
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        assert _validate(db, shop, "WEEK", lines).valid
        frozen_clock.advance(days=8)
        assert _validate(db, shop, "WEEK", lines).error.kind == ErrorKind.WINDOW_CLOSED

    def test_usage_limit_reached(self, db, shop, catalog, make_code):
        """Test a fully used code is rejected"""
        make_code("ONCE", 10, usage_limit=1, used_count=1)
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        result = _validate(db, shop, "ONCE", lines)

        assert result.error.kind == ErrorKind.LIMIT_REACHED
        assert result.error_message == "This discount code has reached its usage limit"

    def test_online_only_code_in_store(self, db, shop, catalog, make_code):
        """Test channel restrictions"""
        make_code("WEBONLY", 10, available_in_store=False)
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        result = _validate(db, shop, "WEBONLY", lines, source=OrderSource.IN_STORE)

        assert result.error.kind == ErrorKind.CHANNEL_DENIED
        assert result.error_message == "This discount code is not available for in-store orders"
        assert _validate(db, shop, "WEBONLY", lines).valid

    def test_store_only_code_online(self, db, shop, catalog, make_code):
        """Test an in-store code is refused online"""
        make_code("SHOPONLY", 10, available_online=False)
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        result = _validate(db, shop, "SHOPONLY", lines)

        assert result.error_message == "This discount code is not available for online orders"

    def test_customer_restriction(self, db, shop, catalog, customer, other_customer, make_code):
        """Test a code restricted to one customer"""
        make_code("VIPONLY", 20, customers=[customer])
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        assert _validate(db, shop, "VIPONLY", lines, customer_id=customer.id).valid
        refused = _validate(db, shop, "VIPONLY", lines, customer_id=other_customer.id)
        assert refused.error.kind == ErrorKind.TARGET_MISMATCH
        assert _validate(db, shop, "VIPONLY", lines, customer_id=None).error.kind == ErrorKind.TARGET_MISMATCH

    def test_category_mismatch(self, db, shop, catalog, make_code):
        """Test a Clothing code on an Electronics-only cart"""
        make_code("CLOTHES", 10, category_id=catalog.clothing.id)
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        result = _validate(db, shop, "CLOTHES", lines)

        assert result.error.kind == ErrorKind.TARGET_MISMATCH
        assert result.error_message == 'This discount code only applies to products in the "Clothing" category'

    def test_category_code_discounts_only_matching_lines(self, db, shop, catalog, make_code):
        """Test the discount amount covers matching lines only"""
        make_code("CLOTHES", 10, category_id=catalog.clothing.id)
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1), CartItem(catalog.shirt.id, 2, catalog.red.id))

        result = _validate(db, shop, "CLOTHES", lines)

        assert result.valid
        assert [l.variant_id for l in result.applicable_lines] == [catalog.red.id]
        assert result.discount_amount == Decimal("4.00")
        assert result.order_total == Decimal("136.00")

    def test_product_mismatch(self, db, shop, catalog, make_code):
        """Test a product code without that product in the cart"""
        make_code("SHIRTS", 10, products=[catalog.shirt])
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        result = _validate(db, shop, "SHIRTS", lines)

        assert result.error_message == "This discount code only applies to specific products not in your cart"

    def test_variant_mismatch(self, db, shop, catalog, make_code):
        """Test a variant code with a sibling variant in the cart"""
        make_code("REDONLY", 10, variants=[catalog.red])
        lines = _lines(db, shop, CartItem(catalog.shirt.id, 1, catalog.blue.id))

        result = _validate(db, shop, "REDONLY", lines)

        assert result.error_message == "This discount code only applies to specific variants not in your cart"

    def test_first_failing_rule_wins(self, db, shop, catalog, make_code):
        """Test an expired and exhausted code reports the window first"""
        make_code("OLD", 10, start=NOW - timedelta(days=5), end=NOW - timedelta(days=1),
                  usage_limit=1, used_count=1)
        lines = _lines(db, shop, CartItem(catalog.laptop.id, 1))

        assert _validate(db, shop, "OLD", lines).error_message == "This discount code has expired"


class TestApplyDiscountCode:
    """Test cases for consuming a code use"""

    def test_increments_used_count(self, db, make_code):
        """Test one successful apply adds exactly one use"""
        code = make_code("SAVE10", 10, usage_limit=100)

        result = apply_discount_code(db, code.id)
        db.commit()
        db.refresh(code)

        assert result.ok
        assert code.used_count == 1

    def test_at_limit(self, db, make_code):
        """Test apply refuses once used_count reached usage_limit"""
        code = make_code("ONCE", 10, usage_limit=1, used_count=1)

        result = apply_discount_code(db, code.id)
        db.commit()
        db.refresh(code)

        assert result.error.kind == ErrorKind.LIMIT_REACHED
        assert code.used_count == 1

    def test_unlimited(self, db, make_code):
        """Test a code without a limit can always be applied"""
        code = make_code("FOREVER", 10, used_count=5000)

        assert apply_discount_code(db, code.id).ok

    def test_unknown(self, db):
        """Test applying a missing code"""
        assert apply_discount_code(db, 999).error.kind == ErrorKind.NOT_FOUND

    def test_concurrent_last_use(self, tmp_path):
        """Test two redemptions racing for the last use: exactly one wins"""
        engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

        with Session() as session:
            shop = Shop(name="Race", plan_type=PlanType.STANDARD.value)
            session.add(shop)
            session.flush()
            code = DiscountCode(shop_id=shop.id, code="LASTONE", percentage=10, usage_limit=1, used_count=0,
                                start_date=NOW - timedelta(days=1), end_date=NOW + timedelta(days=1))
            session.add(code)
            session.commit()
            code_id = code.id

        barrier = threading.Barrier(2)

        def redeem(_):
            with Session() as session:
                barrier.wait()
                result = apply_discount_code(session, code_id)
                if result.ok:
                    session.commit()
                else:
                    session.rollback()
                return result.ok

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = list(pool.map(redeem, range(2)))

        with Session() as session:
            used = session.get(DiscountCode, code_id).used_count
        engine.dispose()

        assert sorted(outcomes) == [False, True]
        assert used == 1


class TestDiscountCodeStats:
    """Test cases for redemption statistics"""

    def test_stats_after_orders(self, db, shop, catalog, customer, make_code):
        """Test stats count orders placed with the code"""
        code = make_code("SAVE10", 10, usage_limit=100)
        for _ in range(2):
            placed = place_order(db, shop.id, OrderSource.ONLINE, customer.id,
                                 [CartItem(catalog.laptop.id, 1)], code="SAVE10")
            assert placed.ok

        stats = get_discount_code_stats(db, shop.id, code.id).value

        assert stats["used_count"] == 2
        assert stats["total_discount_given"] == Decimal("20.00")
        assert len(stats["recent_orders"]) == 2

    def test_stats_unknown_code(self, db, shop):
        """Test stats for a code of no shop"""
        assert get_discount_code_stats(db, shop.id, 42).error.kind == ErrorKind.NOT_FOUND

    def test_find_code_uppercases(self, db, shop, make_code):
        """Test direct lookups normalise case"""
        make_code("SUMMER", 10)

        assert discount_codes.find_code(db, "summer", shop.id).code == "SUMMER"
