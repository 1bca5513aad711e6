"""
Módulo de Fiado (Ledger de crédito) - Tabacaria POS

Lleva la cuenta corriente de los clientes que compran fiado:

- CreditSale: una entrada por venta con pago diferido (monto original
  inmutable, monto pagado acumulado, quitada sí/no)
- CreditPayment: auditoría de cada monto aplicado
- Allocator: reparte un pago entre las ventas en abierto, de la más antigua
  a la más reciente
- SettlementService: lock por cliente + asignación + persistencia atómica

Componentes:
- exceptions.py: errores de dominio tipados
- allocator.py: cálculo puro de la distribución
- store.py: lecturas/escrituras SQLAlchemy
- service.py: orquestación transaccional
- router.py: endpoints REST /credit
"""
