from core.errors import ErrorKind
from models.enums import PlanType
from models.system_limit import SystemLimit
from services import plan_limits
from services.plan_limits import Resource, UNLIMITED
from tests.conftest import NOW


class TestCheckLimit:
    """Test cases for plan quota checks"""

    def test_missing_row_means_unlimited(self, db, shop):
        """Test a plan without a configured limit is unlimited"""
        check = plan_limits.check_limit(db, shop.id, PlanType.STANDARD, Resource.DISCOUNTS)

        assert check.allowed
        assert check.limit == UNLIMITED

    def test_minus_one_means_unlimited(self, db, shop, make_discount, make_limit):
        """Test a -1 value never blocks"""
        make_limit("PREMIUM_DISCOUNTS_LIMIT", -1, plan_type="PREMIUM")
        for _ in range(5):
            make_discount(10)

        assert plan_limits.check_limit(db, shop.id, "PREMIUM", "DISCOUNTS").allowed

    def test_under_limit(self, db, shop, make_discount, make_limit):
        """Test two of three discounts still allows a third"""
        make_limit("STANDARD_DISCOUNTS_LIMIT", 3, plan_type="STANDARD")
        make_discount(10)
        make_discount(20)

        check = plan_limits.check_limit(db, shop.id, PlanType.STANDARD, Resource.DISCOUNTS)

        assert check.allowed
        assert check.current == 2
        assert check.limit == 3

    def test_at_limit(self, db, shop, make_discount, make_limit):
        """Test reaching the quota blocks with a readable message"""
        make_limit("STANDARD_DISCOUNTS_LIMIT", 3, plan_type="STANDARD")
        for pct in (10, 20, 30):
            make_discount(pct)

        check = plan_limits.check_limit(db, shop.id, PlanType.STANDARD, Resource.DISCOUNTS)

        assert not check.allowed
        assert check.message == "You have reached the maximum of 3 active discounts for your standard plan."

    def test_disabled_discounts_do_not_count(self, db, shop, make_discount, make_limit):
        """Test only enabled discounts use the quota"""
        make_limit("STANDARD_DISCOUNTS_LIMIT", 1, plan_type="STANDARD")
        make_discount(10, enabled=False)

        assert plan_limits.check_limit(db, shop.id, PlanType.STANDARD, Resource.DISCOUNTS).allowed

    def test_inactive_codes_do_not_count(self, db, shop, make_code, make_limit):
        """Test only active codes use the quota"""
        make_limit("STANDARD_DISCOUNT_CODES_LIMIT", 1, plan_type="STANDARD")
        make_code("OLDCODE", is_active=False)
        assert plan_limits.check_limit(db, shop.id, PlanType.STANDARD, Resource.DISCOUNT_CODES).allowed

        make_code("NEWCODE")
        assert not plan_limits.check_limit(db, shop.id, PlanType.STANDARD, Resource.DISCOUNT_CODES).allowed

    def test_inactive_limit_row_is_ignored(self, db, shop, make_discount, make_limit):
        """Test switching a limit off lifts it"""
        row = make_limit("STANDARD_DISCOUNTS_LIMIT", 0, plan_type="STANDARD")
        row.is_active = False
        db.commit()

        assert plan_limits.check_limit(db, shop.id, PlanType.STANDARD, Resource.DISCOUNTS).allowed

    def test_plans_are_independent(self, db, shop, make_discount, make_limit):
        """Test each plan reads its own row"""
        make_limit("STANDARD_DISCOUNTS_LIMIT", 1, plan_type="STANDARD")
        make_limit("ADVANCED_DISCOUNTS_LIMIT", 15, plan_type="ADVANCED")
        make_discount(10)

        assert not plan_limits.check_limit(db, shop.id, PlanType.STANDARD, Resource.DISCOUNTS).allowed
        assert plan_limits.check_limit(db, shop.id, PlanType.ADVANCED, Resource.DISCOUNTS).allowed

    def test_products_exclude_deleted(self, db, shop, catalog, make_limit):
        """Test soft-deleted products free their slot"""
        make_limit("STANDARD_PRODUCTS_LIMIT", 2, plan_type="STANDARD", category="PRODUCTS")
        assert not plan_limits.check_limit(db, shop.id, PlanType.STANDARD, Resource.PRODUCTS).allowed

        catalog.laptop.deleted_at = NOW
        db.commit()
        assert plan_limits.check_limit(db, shop.id, PlanType.STANDARD, Resource.PRODUCTS).allowed

    def test_ensure_within_limit(self, db, shop, make_discount, make_limit):
        """Test the typed result used by creation paths"""
        make_limit("STANDARD_DISCOUNTS_LIMIT", 1, plan_type="STANDARD")
        assert plan_limits.ensure_within_limit(db, shop.id, PlanType.STANDARD, Resource.DISCOUNTS).ok

        make_discount(10)
        result = plan_limits.ensure_within_limit(db, shop.id, PlanType.STANDARD, Resource.DISCOUNTS)
        assert result.error.kind == ErrorKind.LIMIT_REACHED


class TestSystemLimits:
    """Test cases for managing SystemLimit rows"""

    def test_seed_defaults(self, db):
        """Test seeding inserts every default once"""
        added = plan_limits.seed_system_limits(db)

        assert added == len(plan_limits.DEFAULT_SYSTEM_LIMITS)
        assert plan_limits.seed_system_limits(db) == 0
        assert plan_limits.get_system_limit(db, "STANDARD_DISCOUNTS_LIMIT") == 3
        assert plan_limits.get_system_limit(db, "PREMIUM_DISCOUNT_CODES_LIMIT") == UNLIMITED

    def test_get_plan_limits(self, db):
        """Test a plan's limits come back keyed by code name"""
        plan_limits.seed_system_limits(db)

        limits = plan_limits.get_plan_limits(db, PlanType.ADVANCED)

        assert limits["ADVANCED_PRODUCTS_LIMIT"] == 1000
        assert all(name.startswith("ADVANCED_") for name in limits)

    def test_create_duplicate(self, db, make_limit):
        """Test code names are unique"""
        make_limit("STANDARD_DISCOUNTS_LIMIT", 3)

        result = plan_limits.create_system_limit(db, "STANDARD_DISCOUNTS_LIMIT", "Dup", 5, "DISCOUNTS")

        assert result.error.kind == ErrorKind.VALIDATION

    def test_reject_values_below_unlimited(self, db):
        """Test -1 is the smallest accepted value"""
        result = plan_limits.create_system_limit(db, "X_LIMIT", "X", -2, "DISCOUNTS")

        assert result.error.kind == ErrorKind.VALIDATION
        assert db.query(SystemLimit).count() == 0

    def test_update(self, db, make_limit):
        """Test raising a limit"""
        make_limit("STANDARD_DISCOUNTS_LIMIT", 3, plan_type="STANDARD")

        result = plan_limits.update_system_limit(db, "STANDARD_DISCOUNTS_LIMIT", value=10)

        assert result.value.value == 10
        assert plan_limits.get_system_limit(db, "STANDARD_DISCOUNTS_LIMIT") == 10

    def test_update_unknown(self, db):
        """Test updating a missing limit"""
        assert plan_limits.update_system_limit(db, "NOPE", value=1).error.kind == ErrorKind.NOT_FOUND

    def test_code_name(self):
        """Test limit code names combine plan and resource"""
        assert plan_limits.limit_code_name("STANDARD", "DISCOUNT_CODES") == "STANDARD_DISCOUNT_CODES_LIMIT"
