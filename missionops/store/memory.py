"""
In-memory mission store.
Plays the remote side of the engine for development and integration tests.
Rows are kept in wire (camelCase) form.
"""
import copy
import secrets
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import structlog

from ..config import Settings
from ..schemas.deployments import DeploymentStatus, to_day
from ..services.lifecycle import is_allowed, next_allowed
from .mailer import Mailer

logger = structlog.get_logger(__name__)


class StoreError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _new_id() -> str:
    return str(uuid.uuid4())


def _money(value) -> float:
    try:
        amount = float(value or 0)
    except (TypeError, ValueError):
        raise StoreError(400, f"Invalid amount: {value!r}")
    if amount < 0:
        raise StoreError(400, "Amounts cannot be negative")
    return amount


class MemoryStore:
    def __init__(self, settings: Settings, mailer: Optional[Mailer] = None):
        self.settings = settings
        self.mailer = mailer or Mailer(settings)
        self.lock = threading.RLock()
        self.deployments: Dict[str, Dict[str, Any]] = {}
        self.daily_logs: Dict[str, Dict[str, Any]] = {}
        self.files: Dict[str, List[Dict[str, Any]]] = {}
        self.assignments: Dict[str, List[str]] = {}
        self.monitors: Dict[str, List[Dict[str, str]]] = {}
        self.personnel: Dict[str, Dict[str, Any]] = {}
        self.users: Dict[str, Dict[str, Any]] = {}
        self.clients: Dict[str, Dict[str, Any]] = {}
        self.invoices: Dict[str, Dict[str, Any]] = {}

    # Reference data

    def add_personnel(self, full_name: str, daily_pay_rate: float = 0.0, email: Optional[str] = None,
                      status: str = "Active", role: str = "Pilot", id: Optional[str] = None) -> Dict[str, Any]:
        row = {
            "id": id or _new_id(),
            "fullName": full_name,
            "email": email,
            "role": role,
            "status": status,
            "dailyPayRate": daily_pay_rate,
        }
        with self.lock:
            self.personnel[row["id"]] = row
        return dict(row)

    def add_user(self, full_name: str, email: Optional[str] = None, role: str = "OPERATIONS",
                 id: Optional[str] = None) -> Dict[str, Any]:
        row = {"id": id or _new_id(), "fullName": full_name, "email": email, "role": role}
        with self.lock:
            self.users[row["id"]] = row
        return dict(row)

    def add_client(self, name: str, contact_email: Optional[str] = None, id: Optional[str] = None) -> Dict[str, Any]:
        row = {"id": id or _new_id(), "name": name, "email": contact_email}
        with self.lock:
            self.clients[row["id"]] = row
        return dict(row)

    def add_file(self, deployment_id: str, name: str, url: str = "") -> Dict[str, Any]:
        with self.lock:
            self._deployment(deployment_id)
            row = {
                "id": _new_id(),
                "name": name,
                "url": url,
                "uploadedAt": datetime.now(timezone.utc).isoformat(),
            }
            self.files.setdefault(deployment_id, []).insert(0, row)
            return dict(row)

    def list_personnel(self) -> List[Dict[str, Any]]:
        with self.lock:
            return [dict(p) for p in self.personnel.values()]

    # Deployments

    def _deployment(self, deployment_id: str) -> Dict[str, Any]:
        row = self.deployments.get(deployment_id)
        if row is None:
            raise StoreError(404, "Deployment not found")
        return row

    def _summary(self, row: Dict[str, Any]) -> Dict[str, Any]:
        data = copy.deepcopy(row)
        data["technicianIds"] = list(self.assignments.get(row["id"], []))
        data["personnelCount"] = len(data["technicianIds"])
        data["fileCount"] = len(self.files.get(row["id"], []))
        data["dailyLogs"] = sorted(
            (dict(log) for log in self._logs(row["id"])),
            key=lambda log: (log["date"], log["createdAt"]),
        )
        return data

    def _logs(self, deployment_id: str, technician_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            log for log in self.daily_logs.values()
            if log["deploymentId"] == deployment_id
            and (technician_id is None or log["technicianId"] == technician_id)
        ]

    def list_deployments(self, status: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
        query = (search or "").strip().lower()
        with self.lock:
            rows = []
            for row in self.deployments.values():
                if status and status != "All" and row["status"] != status:
                    continue
                if query and not (
                    query in row["title"].lower()
                    or query in (row.get("siteName") or "").lower()
                    or query in row["id"].lower()
                ):
                    continue
                rows.append(self._summary(row))
            rows.sort(key=lambda r: r["createdAt"], reverse=True)
            return rows

    def get_deployment(self, deployment_id: str) -> Dict[str, Any]:
        with self.lock:
            data = self._summary(self._deployment(deployment_id))
            team = []
            for member in self.monitors.get(deployment_id, []):
                user = self.users.get(member["id"], {})
                team.append({
                    "id": member["id"],
                    "fullName": user.get("fullName"),
                    "email": user.get("email"),
                    "role": user.get("role"),
                    "missionRole": member["missionRole"],
                })
            data["monitoringTeam"] = team
            return data

    def get_files(self, deployment_id: str) -> List[Dict[str, Any]]:
        with self.lock:
            self._deployment(deployment_id)
            return [dict(f) for f in self.files.get(deployment_id, [])]

    def create_deployment(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        title = (payload.get("title") or "").strip()
        site_name = (payload.get("siteName") or "").strip()
        if not title or not payload.get("type") or not site_name or not payload.get("date"):
            raise StoreError(400, "Title, type, site name, and date are required")
        try:
            status = DeploymentStatus(payload.get("status") or DeploymentStatus.SCHEDULED.value).value
            day = to_day(payload["date"])
        except ValueError as e:
            raise StoreError(400, str(e))
        row = {
            "id": _new_id(),
            "title": title,
            "type": payload["type"],
            "status": status,
            "siteName": site_name,
            "siteId": payload.get("siteId"),
            "clientId": payload.get("clientId"),
            "date": day,
            "location": payload.get("location"),
            "notes": payload.get("notes"),
            "daysOnSite": int(payload.get("daysOnSite") or 1),
            "baseCost": None,
            "markupPercentage": None,
            "clientPrice": None,
            "travelCosts": None,
            "equipmentCosts": None,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }
        with self.lock:
            self.deployments[row["id"]] = row
            return self._summary(row)

    def update_deployment(self, deployment_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        with self.lock:
            row = self._deployment(deployment_id)
            status = patch.get("status")
            if status and status != row["status"]:
                try:
                    DeploymentStatus(status)
                except ValueError:
                    raise StoreError(400, f"Unknown status: {status}")
                if self.settings.enforce_status_transitions and not is_allowed(row["status"], status):
                    allowed = ", ".join(s.value for s in next_allowed(row["status"])) or "none"
                    raise StoreError(
                        400,
                        f"Invalid status transition from {row['status']} to {status} (allowed: {allowed})",
                    )
            try:
                day = to_day(patch["date"]) if patch.get("date") is not None else None
                days = int(patch["daysOnSite"]) if patch.get("daysOnSite") is not None else None
            except ValueError as e:
                raise StoreError(400, str(e))
            if days is not None and days < 1:
                raise StoreError(400, "daysOnSite must be at least 1")

            if status and status != row["status"]:
                logger.info("status_change", deployment_id=deployment_id, previous=row["status"], status=status)
            for key in ("title", "type", "status", "siteName", "siteId", "clientId", "location", "notes"):
                if patch.get(key) is not None:
                    row[key] = patch[key]
            if day is not None:
                row["date"] = day
            if days is not None:
                row["daysOnSite"] = days
            return self._summary(row)

    def delete_deployment(self, deployment_id: str) -> None:
        with self.lock:
            self._deployment(deployment_id)
            del self.deployments[deployment_id]
            for log in self._logs(deployment_id):
                del self.daily_logs[log["id"]]
            self.files.pop(deployment_id, None)
            self.assignments.pop(deployment_id, None)
            self.monitors.pop(deployment_id, None)

    # Daily logs

    def add_daily_log(self, deployment_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not payload.get("date") or not payload.get("technicianId") or payload.get("dailyPay") is None:
            raise StoreError(400, "Date, technician ID, and daily pay are required")
        try:
            day = to_day(payload["date"])
        except ValueError as e:
            raise StoreError(400, str(e))
        technician_id = str(payload["technicianId"])
        with self.lock:
            self._deployment(deployment_id)
            if technician_id not in self.personnel:
                raise StoreError(404, "Technician not found")
            for log in self._logs(deployment_id, technician_id):
                if log["date"] == day:
                    raise StoreError(409, "Daily log already exists for this technician on this date")
            row = {
                "id": _new_id(),
                "deploymentId": deployment_id,
                "date": day,
                "technicianId": technician_id,
                "dailyPay": _money(payload["dailyPay"]),
                "bonusPay": _money(payload.get("bonusPay")),
                "notes": payload.get("notes") or None,
                "createdAt": datetime.now(timezone.utc).isoformat(),
            }
            self.daily_logs[row["id"]] = row
            return dict(row)

    def _log(self, deployment_id: str, log_id: str) -> Dict[str, Any]:
        log = self.daily_logs.get(log_id)
        if log is None or log["deploymentId"] != deployment_id:
            raise StoreError(404, "Daily log not found")
        return log

    def update_daily_log(self, deployment_id: str, log_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self.lock:
            log = self._log(deployment_id, log_id)
            amounts = {
                key: _money(payload[key])
                for key in ("dailyPay", "bonusPay")
                if payload.get(key) is not None
            }
            log.update(amounts)
            if "notes" in payload:
                log["notes"] = payload["notes"]
            return dict(log)

    def delete_daily_log(self, deployment_id: str, log_id: str) -> None:
        with self.lock:
            self._log(deployment_id, log_id)
            del self.daily_logs[log_id]

    def earnings(self, deployment_id: str, technician_id: str) -> float:
        return sum(
            (log["dailyPay"] or 0) + (log["bonusPay"] or 0)
            for log in self._logs(deployment_id, technician_id)
        )

    # Crew

    def assign_personnel(self, deployment_id: str, personnel_id: Optional[str]) -> Dict[str, Any]:
        if not personnel_id:
            raise StoreError(400, "Personnel ID is required")
        with self.lock:
            self._deployment(deployment_id)
            if personnel_id not in self.personnel:
                raise StoreError(404, "Personnel not found")
            assigned = self.assignments.setdefault(deployment_id, [])
            if personnel_id not in assigned:
                assigned.append(personnel_id)
            return {"deploymentId": deployment_id, "personnelId": personnel_id}

    def unassign_personnel(self, deployment_id: str, personnel_id: str) -> None:
        with self.lock:
            self._deployment(deployment_id)
            assigned = self.assignments.get(deployment_id, [])
            if personnel_id in assigned:
                assigned.remove(personnel_id)

    def assign_monitor(self, deployment_id: str, user_id: Optional[str], role: str = "Monitor") -> Dict[str, Any]:
        if not user_id:
            raise StoreError(400, "User ID is required")
        with self.lock:
            self._deployment(deployment_id)
            if user_id not in self.users:
                raise StoreError(404, "User not found")
            team = self.monitors.setdefault(deployment_id, [])
            team[:] = [m for m in team if m["id"] != user_id]
            team.append({"id": user_id, "missionRole": role or "Monitor"})
            return {"deploymentId": deployment_id, "userId": user_id, "missionRole": role}

    def unassign_monitor(self, deployment_id: str, user_id: str) -> None:
        with self.lock:
            self._deployment(deployment_id)
            team = self.monitors.get(deployment_id, [])
            team[:] = [m for m in team if m["id"] != user_id]

    # Pricing

    def calculate_pricing(self, deployment_id: str, markup_override=None) -> Dict[str, Any]:
        with self.lock:
            row = self._deployment(deployment_id)
            pilots = [self.personnel[p] for p in self.assignments.get(deployment_id, []) if p in self.personnel]
            days = row.get("daysOnSite") or 1
            pilot_daily_cost = sum(_money(p.get("dailyPayRate")) for p in pilots)
            labor_cost = pilot_daily_cost * days * self.settings.labor_multiplier
            lodging_cost = self.settings.lodging_daily_rate * days * len(pilots)
            travel_cost = _money(row.get("travelCosts"))
            equipment_cost = _money(row.get("equipmentCosts"))
            total_base_cost = labor_cost + lodging_cost + travel_cost + equipment_cost

            if markup_override is not None:
                markup = float(markup_override)
            elif row.get("markupPercentage") is not None:
                markup = float(row["markupPercentage"])
            else:
                markup = float(self.settings.default_markup_percentage)
            recommended_price = total_base_cost * (1 + markup / 100)
            profit = recommended_price - total_base_cost
            return {
                "deploymentId": deployment_id,
                "calculation": {
                    "laborCost": labor_cost,
                    "lodgingCost": lodging_cost,
                    "travelCost": travel_cost,
                    "equipmentCost": equipment_cost,
                    "totalBaseCost": total_base_cost,
                },
                "recommendation": {
                    "markupPercentage": markup,
                    "recommendedPrice": recommended_price,
                    "estimatedProfit": profit,
                    "estimatedMargin": (profit / recommended_price) * 100 if recommended_price else 0.0,
                },
            }

    def save_pricing(self, deployment_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self.lock:
            row = self._deployment(deployment_id)
            for key in ("baseCost", "markupPercentage", "clientPrice", "travelCosts", "equipmentCosts"):
                if key in payload:
                    row[key] = None if payload[key] is None else _money(payload[key])
            return self._summary(row)

    # Invoices

    def _issue_invoice(self, deployment_id: str, personnel_id: str, amount: float,
                       payment_terms_days: int) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        row = {
            "id": _new_id(),
            "deploymentId": deployment_id,
            "personnelId": personnel_id,
            "amount": amount,
            "status": "SENT",
            "token": secrets.token_hex(32),
            "tokenExpiresAt": (now + timedelta(days=self.settings.invoice_link_ttl_days)).isoformat(),
            "paymentTermsDays": payment_terms_days,
            "dueDate": (now + timedelta(days=payment_terms_days)).date().isoformat(),
            "createdAt": now.isoformat(),
        }
        self.invoices[row["id"]] = row
        return row

    def create_invoice(self, deployment_id: str, personnel_id: str,
                       payment_terms_days: Optional[int] = None) -> Dict[str, Any]:
        terms = self.settings.default_payment_terms_days if payment_terms_days is None else int(payment_terms_days)
        with self.lock:
            self._deployment(deployment_id)
            amount = self.earnings(deployment_id, personnel_id)
            if amount <= 0:
                raise StoreError(400, "No earnings found for this pilot on this mission.")
            invoice = self._issue_invoice(deployment_id, personnel_id, amount, terms)
            return {"invoice": dict(invoice), "link": f"/invoice/{invoice['token']}"}

    def _open_invoice(self, deployment_id: str, personnel_id: str) -> Optional[Dict[str, Any]]:
        for invoice in self.invoices.values():
            if invoice["deploymentId"] == deployment_id and invoice["personnelId"] == personnel_id \
                    and invoice["status"] != "PAID":
                return invoice
        return None

    def send_invoices(self, deployment_id: str, personnel_ids: Optional[List[str]] = None,
                      notify_pilots: bool = True, note: Optional[str] = None) -> Dict[str, Any]:
        with self.lock:
            deployment = self._deployment(deployment_id)
            technicians = {log["technicianId"] for log in self._logs(deployment_id)}
            if personnel_ids:
                technicians &= set(personnel_ids)
            summaries = [
                (tech, self.earnings(deployment_id, tech))
                for tech in sorted(technicians)
            ]
            summaries = [(tech, total) for tech, total in summaries if total > 0]
            if not summaries:
                raise StoreError(400, "No earnings found to invoice for this mission.")

            sent = []
            for tech, total in summaries:
                invoice = self._open_invoice(deployment_id, tech)
                if invoice is None:
                    invoice = self._issue_invoice(deployment_id, tech, total, self.settings.default_payment_terms_days)
                elif invoice["amount"] != total:
                    invoice["amount"] = total
                pilot = self.personnel.get(tech, {})
                emailed = False
                if notify_pilots:
                    link = f"{self.settings.frontend_base_url.rstrip('/')}/invoice/{invoice['token']}"
                    body = f"Your invoice for {deployment['title']} ({deployment.get('siteName')}): ${total:,.2f}\n{link}"
                    if note:
                        body += f"\n\n{note}"
                    self.mailer.send(pilot.get("email"), f"Invoice: {deployment['title']}", body)
                    emailed = True
                sent.append({
                    "personnelId": tech,
                    "pilotName": pilot.get("fullName"),
                    "amount": total,
                    "emailed": emailed,
                })

            if self.settings.admin_email:
                lines = "\n".join(f"- {s['pilotName']}: ${s['amount']:,.2f}" for s in sent)
                self.mailer.send(self.settings.admin_email, f"Invoice summary: {deployment['title']}", lines)

            if notify_pilots:
                message = f"Sent {len(sent)} invoices successfully."
            else:
                message = f"Generated {len(sent)} invoices without notifying pilots."
            return {"message": message, "sent": sent, "mock": self.mailer.is_mock}

    def notify_assignment(self, deployment_id: str, person_id: Optional[str], kind: Optional[str]) -> Dict[str, Any]:
        if not person_id or not kind:
            raise StoreError(400, "personId and type are required")
        directories = {"pilot": self.personnel, "monitor": self.users, "client": self.clients}
        if kind not in directories:
            raise StoreError(400, f"Unknown assignment type: {kind}")
        with self.lock:
            deployment = self._deployment(deployment_id)
            person = directories[kind].get(person_id)
            if person is None:
                raise StoreError(404, "Recipient not found")
            name = person.get("fullName") or person.get("name")
            self.mailer.send(
                person.get("email"),
                f"You have been assigned to {deployment['title']}",
                f"Hi {name},\n\nYou have been assigned to {deployment['title']} at "
                f"{deployment.get('siteName')} starting {deployment['date']}.",
            )
            return {"message": f"Assignment notification sent to {name}", "mock": self.mailer.is_mock}
